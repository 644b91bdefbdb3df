import re
from wakeguard.exceptions import AddressValidationError

__all__ = ['validate_ipv4', 'validate_mac', 'normalize_mac']

_IPV4_PATTERN = re.compile(r'^([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})$', re.ASCII)
_MAC_PATTERN = re.compile(r'^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$', re.ASCII)

def validate_ipv4(value) -> bool:
    if not isinstance(value, str):
        return False

    # fullmatch so a trailing newline is not accepted by "$"
    match = _IPV4_PATTERN.fullmatch(value)

    if not match:
        return False

    return all(int(octet) <= 255 for octet in match.groups())

def validate_mac(value) -> bool:
    if not isinstance(value, str):
        return False

    return _MAC_PATTERN.fullmatch(value) is not None

def normalize_mac(value: str) -> str:
    """Return the MAC in upper-case colon form, accepting '-' separators."""
    if not isinstance(value, str):
        raise AddressValidationError(f'Invalid MAC address: {value!r}', value)

    mac = value.strip().upper().replace('-', ':')

    if not validate_mac(mac):
        raise AddressValidationError(f'Invalid MAC address format: {value!r}', value)

    return mac
