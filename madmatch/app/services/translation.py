# madmatch/app/services/translation.py
"""
Danish -> English translation of common grocery names.
The third-party recipe API only understands English ingredient names.
"""
from __future__ import annotations

FOOD_TRANSLATIONS: dict[str, str] = {
    # kød
    "hakket oksekød": "ground beef",
    "oksekød": "beef",
    "svinekød": "pork",
    "kylling": "chicken",
    "kalkun": "turkey",
    "lam": "lamb",
    "bacon": "bacon",
    "pølser": "sausages",
    "pølse": "sausage",
    # mejeri
    "mælk": "milk",
    "ost": "cheese",
    "smør": "butter",
    "yoghurt": "yogurt",
    "fløde": "cream",
    "skyr": "skyr",
    "æg": "eggs",
    # grønt
    "kartofler": "potatoes",
    "kartoffel": "potato",
    "tomat": "tomato",
    "tomater": "tomatoes",
    "løg": "onion",
    "løger": "onions",
    "gulerødder": "carrots",
    "gulerod": "carrot",
    "salat": "lettuce",
    "agurk": "cucumber",
    "peberfrugt": "bell pepper",
    "peberfrugter": "bell peppers",
    "spinat": "spinach",
    "broccoli": "broccoli",
    "blomkål": "cauliflower",
    # frugt
    "æbler": "apples",
    "æble": "apple",
    "banan": "banana",
    "bananer": "bananas",
    "appelsin": "orange",
    "appelsiner": "oranges",
    "citron": "lemon",
    "citroner": "lemons",
    "jordbær": "strawberries",
    # brød og kornprodukter
    "brød": "bread",
    "rugbrød": "rye bread",
    "pasta": "pasta",
    "ris": "rice",
    "havregryn": "oats",
    "mel": "flour",
    # modifiers, only used on exact match
    "økologisk": "organic",
    "frisk": "fresh",
    "frossen": "frozen",
    "dansk": "danish",
}

MODIFIERS = frozenset({"økologisk", "frisk", "frossen", "dansk"})

# Longest terms first so "hakket oksekød" wins over "oksekød".
_PARTIAL_TERMS = sorted(
    ((danish, english) for danish, english in FOOD_TRANSLATIONS.items() if danish not in MODIFIERS),
    key=lambda item: len(item[0]),
    reverse=True,
)


def translate_ingredient(name: str) -> str:
    """
    Translate a Danish product or ingredient name to English.

    Tries an exact match, then the longest known food term contained in the
    name, and finally returns the input unchanged (it may already be English
    or a brand name).
    """
    if not name:
        return name

    lowered = name.lower().strip()
    if lowered in FOOD_TRANSLATIONS:
        return FOOD_TRANSLATIONS[lowered]

    for danish, english in _PARTIAL_TERMS:
        if danish in lowered:
            return english

    return name
