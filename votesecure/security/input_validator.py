# votesecure/security/input_validator.py

import re
import html
import base64
import binascii
import bleach
from datetime import date, datetime

# Input validation and sanitization for request payloads

MINIMUM_VOTING_AGE = 18


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'voter_id': re.compile(r'^[A-Z0-9]{8,12}$'),
            'data_url': re.compile(r'^data:image/[\w.+-]+;base64,', re.IGNORECASE),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE)
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = re.sub(self.patterns['xss_event'], '', sanitized)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags,
                                 attributes=self.allowed_html_attributes, strip=True)
        # bleach escapes entities; names are stored as plain text
        return html.unescape(sanitized).strip()

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_voter_id(self, voter_id):
        return isinstance(voter_id, str) and bool(self.patterns['voter_id'].match(voter_id))

    def parse_positive_int(self, value):
        """Return ``value`` as an int > 0, or None."""
        if isinstance(value, bool):
            return None
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            return None
        return number if number > 0 else None

    def parse_date(self, value):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise ValueError("Invalid date of birth format. Please use YYYY-MM-DD format.")
        try:
            return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
        except ValueError:
            raise ValueError("Invalid date of birth format. Please use YYYY-MM-DD format.")

    def calculate_age(self, birth_date, today):
        age = today.year - birth_date.year
        if (today.month, today.day) < (birth_date.month, birth_date.day):
            age -= 1
        return age

    def is_of_voting_age(self, birth_date, today):
        return self.calculate_age(birth_date, today) >= MINIMUM_VOTING_AGE

    def decode_image_data_url(self, data_url):
        """Decode a base64 image (data URL prefix optional) into bytes."""
        if not isinstance(data_url, str) or not data_url.strip():
            raise ValueError("Invalid face image data")
        encoded = re.sub(self.patterns['data_url'], '', data_url.strip())
        try:
            image_bytes = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Invalid face image data")
        if not image_bytes:
            raise ValueError("Invalid face image data")
        return image_bytes
