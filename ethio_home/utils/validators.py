import re
from email_validator import validate_email as email_validator, EmailNotValidError


def validate_email(email):
    """Validate email address"""
    if not email:
        return False
    try:
        email_validator(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


def validate_phone(phone):
    """Validate Ethiopian phone number"""
    if not phone:
        return False

    phone = re.sub(r'[\s\-]', '', phone)

    # Valid formats: +2519XXXXXXXX, 2519XXXXXXXX, 09XXXXXXXX, 07XXXXXXXX
    patterns = [
        r'^\+251[79]\d{8}$',
        r'^251[79]\d{8}$',
        r'^0[79]\d{8}$',
    ]

    return any(re.match(pattern, phone) for pattern in patterns)


def validate_password(password):
    """Minimum 8 characters"""
    return bool(password) and len(password) >= 8


def format_phone_number(phone):
    """Format phone number to standard format (+251XXXXXXXXX)"""
    phone = re.sub(r'[\s\-]', '', phone)

    if phone.startswith('0'):
        phone = '+251' + phone[1:]
    elif phone.startswith('251'):
        phone = '+' + phone

    return phone


def validate_signup(data):
    """Return a list of validation messages for a signup body"""
    errors = []
    if not data.get('name'):
        errors.append('Please tell us your name!')
    if not validate_email(data.get('email')):
        errors.append('Please provide a valid email')
    if not validate_phone(data.get('phone') or ''):
        errors.append('Please provide a valid phone number')
    if not validate_password(data.get('password')):
        errors.append('Password must be at least 8 characters long')
    if data.get('password') != data.get('password_confirm'):
        errors.append('Passwords are not the same!')
    return errors
