"""
Layer 3 — MICR Line Parser
Splits recognized E-13B text into routing, account and check numbers.

Symbol spellings accepted (OCR engines and MICR fonts disagree):
    transit  ⑆  A  T
    on-us    ⑈  C  U
    amount   ⑇  B
    dash     ⑉  D
"""
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

NOT_FOUND = "Not Found"

_SYMBOLS = {
    '⑆': 'T', 'A': 'T', 'T': 'T',
    '⑈': 'U', 'C': 'U', 'U': 'U',
    '⑇': 'B', 'B': 'B',
    '⑉': 'D', 'D': 'D',
}

_ROUTING = re.compile(r'T\s*(\d{9})\s*T')
_ON_US = re.compile(r'^([\dD ]*?\d[\dD ]*?)\s*U\s*(\d+)?')
_AUX_ON_US = re.compile(r'U\s*(\d+)\s*U\s*$')


@dataclass(frozen=True)
class MICRFields:
    """Per-backend MICR result; each field is a value or NOT_FOUND."""
    routing_number: str = NOT_FOUND
    account_number: str = NOT_FOUND
    check_number: str = NOT_FOUND

    @classmethod
    def not_found(cls) -> "MICRFields":
        return cls()

    @property
    def found(self) -> bool:
        return any(v != NOT_FOUND for v in (self.routing_number, self.account_number, self.check_number))

    def to_dict(self):
        return {
            'routingNumber': self.routing_number,
            'accountNumber': self.account_number,
            'checkNumber': self.check_number,
        }


def normalize_micr_text(text: str) -> str:
    """Map symbol spellings to T/U/B/D and drop anything else but digits and spaces."""
    out = []
    for ch in text.upper():
        if ch.isdigit():
            out.append(ch)
        elif ch in _SYMBOLS:
            out.append(_SYMBOLS[ch])
        elif ch.isspace():
            out.append(' ')
    return re.sub(r' +', ' ', ''.join(out)).strip()


def validate_aba_routing(routing_number: str) -> bool:
    """ABA routing number checksum (weights 3, 7, 1)."""
    if not routing_number or len(routing_number) != 9 or not routing_number.isdigit():
        return False
    digits = [int(d) for d in routing_number]
    weights = [3, 7, 1, 3, 7, 1, 3, 7, 1]
    return sum(d * w for d, w in zip(digits, weights)) % 10 == 0


def _digits(field: str) -> str:
    return re.sub(r'[^\d]', '', field)


def parse_micr_line(text: str) -> MICRFields:
    """
    Parse a recognized MICR line.

    Personal checks:  T<routing>T <account>U <check>
    Business checks:  U<check>U T<routing>T <account>U

    Args:
        text: Raw OCR output

    Returns:
        MICRFields with NOT_FOUND for anything that could not be located
    """
    line = normalize_micr_text(text or '')
    if not line:
        return MICRFields.not_found()

    routing = NOT_FOUND
    account = NOT_FOUND
    check = NOT_FOUND

    match = _ROUTING.search(line)
    if match is None:
        logger.debug(f"No routing field in MICR line: {line!r}")
        return MICRFields.not_found()

    routing = match.group(1)
    if not validate_aba_routing(routing):
        logger.debug(f"Routing number {routing} fails ABA checksum")

    before = line[:match.start()]
    after = line[match.end():]

    on_us = _ON_US.match(after.strip())
    if on_us:
        account_digits = _digits(on_us.group(1))
        if account_digits:
            account = account_digits
        if on_us.group(2):
            check = on_us.group(2)

    aux = _AUX_ON_US.search(before.strip())
    if aux:
        # Auxiliary on-us field carries the check number on business checks
        check = aux.group(1)

    return MICRFields(routing, account, check)
