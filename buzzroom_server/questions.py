"""
questions.py
The built-in question deck used until a host pushes a custom set.
"""
from typing import List

from .models import Question

_DEFAULT_DECK = [
    ("Who has more Instagram followers?",
     ["Kylie Jenner", "Lionel Messi", "Cristiano Ronaldo", "Kim Kardashian"], 2),
    ("Which movie made more money in 2023?",
     ["Barbie", "Oppenheimer", "Mario Movie", "Avatar 2"], 0),
    ("What's Taylor Swift's cat's name?",
     ["Meredith", "Oliver", "Luna", "Bella"], 0),
    ("Which Netflix show features Wednesday Addams?",
     ["Stranger Things", "Wednesday", "Shadow and Bone", "Outer Banks"], 1),
    ("Most played song on Spotify ever is:",
     ["Shape of You", "Blinding Lights", "Dance Monkey", "Someone Like You"], 0),
    ("What's the most used emoji worldwide?",
     ["\U0001F602", "❤️", "\U0001F44D", "\U0001F62D"], 0),
    ("Which platform has more users?",
     ["Instagram", "TikTok", "Twitter", "Snapchat"], 0),
    ("Who won Best Actor Oscar 2023?",
     ["Austin Butler", "Brendan Fraser", "Colin Farrell", "Tom Cruise"], 1),
    ("What's BTS's fandom called?",
     ["ARMY", "BLINK", "ONCE", "STAY"], 0),
    ("Most subscribed YouTube channel is:",
     ["PewDiePie", "MrBeast", "T-Series", "Cocomelon"], 1),
    ("How many subscribers does ACKO insurance YouTube channel have?",
     ["125K", "250K", "500K", "750K"], 1),
    ("How many vehicles do we insure today at ACKO?",
     ["2 Million", "3.5 Million", "5 Million", "7 Million"], 2),
    ("How many health policies have we sold till date at ACKO?",
     ["100K", "250K", "500K", "1 Million"], 3),
]


def default_questions() -> List[Question]:
    """Returns a fresh list of the built-in questions."""
    return [
        Question(text=text, options=options, correct_index=correct)
        for text, options, correct in _DEFAULT_DECK
    ]
