"""Seed dataset: the Irish traditional tunes the catalog started from.

Title-keyed, in the legacy seed format accepted by
:func:`chord_catalog.transfer.parse_catalog`.
"""

from typing import Any

SEED_SONGS: dict[str, dict[str, Any]] = {
    "Ballydesmond Polka 2": {
        "key": "A Dorian",
        "time": "2/4",
        "type": "Polka",
        "chords": {
            "A Part": "Am | Am | G | G Em | Am | Am | Em | Am",
            "B Part": "Am | Am | G | G Em | Am | C | Em | Am",
        },
    },
    "Cooley's Reel": {
        "key": "E Dorian or E Minor",
        "time": "4/4",
        "type": "Reel",
        "chords": {
            "A Part": "Em | Em | D | D | Em | Em | D | D Em",
            "B Part": "Em | Em | D | D | Em | Em | D | D Em",
        },
    },
    "The Sally Gardens": {
        "key": "G",
        "time": "2/2",
        "type": "Reel",
        "chords": {
            "A Part": "G | G | G C | D | G | G | G C | D G",
            "B Part": "G | G | C | D | G | G | G C | D G",
        },
    },
    "The Lark In The Morning": {
        "key": "D",
        "time": "6/8",
        "type": "Jig",
        "chords": {
            "A Part": "D | G | D | G | D | G | D A | G",
            "B Part": "D | G D | D | G | D | G D | G D | Em G",
            "C Part": "D | D | D | Em G | D | D | G D | Em G",
            "D Part": "D | D | D | G | D | A D | G D | Em G | D",
        },
    },
    "The Foggy Dew": {
        "key": "Dm",
        "time": "4/4",
        "type": "Ballad",
        "chords": {
            "Verse": "Dm | C | Dm | Am | Dm | C | Dm | Dm",
            "Chorus": "F | C | Dm | Am | Dm | C | Dm | Dm",
        },
    },
    "Whiskey in the Jar": {
        "key": "G",
        "time": "4/4",
        "type": "Ballad",
        "chords": {
            "Verse": "G | Em | C | G | G | Em | D | D",
            "Chorus": "G | Em | C | G | D | Em | C | G",
        },
    },
    "The Wild Mountain Thyme": {
        "key": "G",
        "time": "4/4",
        "type": "Air",
        "chords": {
            "Verse": "G | C | G | Em | G | C | D | G",
            "Chorus": "G | C | G | Em | Am | D | G | G",
        },
    },
    "Danny Boy": {
        "key": "C",
        "time": "4/4",
        "type": "Air",
        "chords": {
            "Verse": "C | F | C | Am | F | G | C | C",
            "Bridge": "Am | F | C | G | Am | F | G | C",
        },
    },
    "The Parting Glass": {
        "key": "Am",
        "time": "4/4",
        "type": "Air",
        "chords": {
            "Verse": "Am | F | C | G | Am | F | G | Am",
            "Chorus": "F | C | G | Am | F | C | G | Am",
        },
    },
    "Morrison's Jig": {
        "key": "Em",
        "time": "6/8",
        "type": "Jig",
        "chords": {
            "A Part": "Em | D | Em | D | Em | D | Em | Em",
            "B Part": "G | D | Em | D | G | D | Em | Em",
        },
    },
    "The Irish Washerwoman": {
        "key": "G",
        "time": "6/8",
        "type": "Jig",
        "chords": {
            "A Part": "G | C | G | D | G | C | D | G",
            "B Part": "G | C | G | D | Em | C | D | G",
        },
    },
    "The Kesh Jig": {
        "key": "G",
        "time": "6/8",
        "type": "Jig",
        "chords": {
            "A Part": "G | G | C | G | G | D | G | G",
            "B Part": "Em | Em | D | D | G | C | G | G",
        },
    },
}
