"""Automated manager personas for headless season runs."""

PERSONAS = {
    "diplomat": {
        "name": "Diplomat",
        "tones": ["RESPECTFUL", "HUMBLE", "BLAME_SELF", "DEFLECTIVE"],
        "drama_choice": "first",
        "style": "Keeps the room calm. Takes the blame, praises opponents.",
    },
    "firebrand": {
        "name": "Firebrand",
        "tones": ["TRASH_TALK", "AGGRESSIVE", "CONFIDENT", "BLAME_TEAM"],
        "drama_choice": "last",
        "style": "Feeds the storylines. Picks fights in public and in the locker room.",
    },
    "chaotic": {
        "name": "Chaotic",
        "tones": [],
        "drama_choice": "random",
        "style": "No plan. Every answer is a coin flip.",
    },
}
