import bleach


def sanitize_string(text, allowed_tags=None):
    """Sanitize a string by removing HTML tags and stripping whitespace"""
    if text is None:
        return ''

    text = bleach.clean(str(text), tags=allowed_tags or [], strip=True)
    return text.strip()


def sanitize_payload(data, fields):
    """Strip markup from the given free-text fields of a request body, in place"""
    for field in fields:
        if isinstance(data.get(field), str):
            data[field] = sanitize_string(data[field])
    return data
