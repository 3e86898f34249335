"""
Profanity filter for free text on the bus dashboard
Checks student feedback and admin broadcast messages before they are stored
"""

import re

# Standalone words only, so names and place names are not flagged
PROFANITY_LIST = [
    'fuck', 'fucking', 'fucked', 'fucker', 'shit', 'shitty',
    'bitch', 'bastard', 'asshole', 'arsehole', 'dickhead', 'twat', 'cunt',
    'nigger', 'nigga', 'faggot',
    # Common variations and leetspeak
    'f*ck', 'f**k', 'sh1t', 'fuk', 'shyt', 'f4ck', 'sh!t'
]

def _pattern(word):
    # \b does not match next to '*' or '!', so anchor on non-word neighbours instead
    return r'(?<!\w)' + re.escape(word) + r'(?!\w)'

def contains_profanity(text):
    """
    Check if text contains profanity
    Returns tuple (bool, list_of_found_words)
    """
    if not text or not isinstance(text, str):
        return False, []

    text_lower = text.lower()
    found_words = [word for word in PROFANITY_LIST if re.search(_pattern(word), text_lower)]
    return len(found_words) > 0, found_words

def filter_profanity(text, replacement="***"):
    """Replace profanity in text with replacement characters"""
    if not text or not isinstance(text, str):
        return text

    cleaned_text = text
    for word in PROFANITY_LIST:
        cleaned_text = re.sub(_pattern(word), replacement, cleaned_text, flags=re.IGNORECASE)
    return cleaned_text

def validate_text_input(text, field_name="message"):
    """
    Validate a required free-text field
    Returns tuple (is_valid, error_message)
    """
    if not text or not isinstance(text, str) or not text.strip():
        return False, f"The {field_name} cannot be empty."

    has_profanity, _ = contains_profanity(text)
    if has_profanity:
        return False, f"The {field_name} contains inappropriate language. Please revise your input."

    return True, None

def sanitize_input(text):
    """Trim whitespace and mask any profanity"""
    if not text or not isinstance(text, str):
        return text
    return filter_profanity(text.strip())
