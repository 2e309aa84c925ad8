"""Census geography codes: classification, state tables and scale resolution."""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)

FIPS_TYPES = ("nation", "state", "county", "tract", "blockgroup", "block", "city", "unknown")

# Code width -> geography type
FIPS_WIDTHS = {
    2: "state",
    5: "county",
    7: "city",
    11: "tract",
    12: "blockgroup",
    15: "block",
}

# Width of a code that lost its leading zero -> full width
PADDED_WIDTHS = {1: 2, 4: 5, 6: 7, 10: 11, 14: 15}

# Types whose land area is the sum of their block groups
BLOCKGROUP_BUILT_TYPES = ("state", "county", "tract", "blockgroup")

# State FIPS -> (postal abbreviation, name)
STATES = {
    "01": ("AL", "Alabama"), "02": ("AK", "Alaska"), "04": ("AZ", "Arizona"),
    "05": ("AR", "Arkansas"), "06": ("CA", "California"), "08": ("CO", "Colorado"),
    "09": ("CT", "Connecticut"), "10": ("DE", "Delaware"), "11": ("DC", "District of Columbia"),
    "12": ("FL", "Florida"), "13": ("GA", "Georgia"), "15": ("HI", "Hawaii"),
    "16": ("ID", "Idaho"), "17": ("IL", "Illinois"), "18": ("IN", "Indiana"),
    "19": ("IA", "Iowa"), "20": ("KS", "Kansas"), "21": ("KY", "Kentucky"),
    "22": ("LA", "Louisiana"), "23": ("ME", "Maine"), "24": ("MD", "Maryland"),
    "25": ("MA", "Massachusetts"), "26": ("MI", "Michigan"), "27": ("MN", "Minnesota"),
    "28": ("MS", "Mississippi"), "29": ("MO", "Missouri"), "30": ("MT", "Montana"),
    "31": ("NE", "Nebraska"), "32": ("NV", "Nevada"), "33": ("NH", "New Hampshire"),
    "34": ("NJ", "New Jersey"), "35": ("NM", "New Mexico"), "36": ("NY", "New York"),
    "37": ("NC", "North Carolina"), "38": ("ND", "North Dakota"), "39": ("OH", "Ohio"),
    "40": ("OK", "Oklahoma"), "41": ("OR", "Oregon"), "42": ("PA", "Pennsylvania"),
    "44": ("RI", "Rhode Island"), "45": ("SC", "South Carolina"), "46": ("SD", "South Dakota"),
    "47": ("TN", "Tennessee"), "48": ("TX", "Texas"), "49": ("UT", "Utah"),
    "50": ("VT", "Vermont"), "51": ("VA", "Virginia"), "53": ("WA", "Washington"),
    "54": ("WV", "West Virginia"), "55": ("WI", "Wisconsin"), "56": ("WY", "Wyoming"),
    "60": ("AS", "American Samoa"), "66": ("GU", "Guam"),
    "69": ("MP", "Northern Mariana Islands"), "72": ("PR", "Puerto Rico"),
    "78": ("VI", "U.S. Virgin Islands"),
}

_STATE_BY_NAME = {}
for _code, (_abbr, _name) in STATES.items():
    _STATE_BY_NAME[_abbr.lower()] = _code
    _STATE_BY_NAME[_name.lower()] = _code


@dataclass(frozen=True)
class Resolved:
    """A place name that translated to one or more codes."""
    codes: List[str]


@dataclass(frozen=True)
class NotAName:
    """Input that is not a known place name, so it is taken as a code."""
    original: str


NameResolution = Union[Resolved, NotAName]


def fips_lead_zero(fips: Any) -> Optional[str]:
    """
    Restore a leading zero lost when a code was stored as a number.

    Args:
        fips: Code as a string or number

    Returns:
        Zero-padded code, or None for a missing value
    """
    if fips is None:
        return None
    code = str(fips).strip()
    if code.isdigit() and len(code) in PADDED_WIDTHS:
        code = code.zfill(PADDED_WIDTHS[len(code)])
    return code


def fips_type(fips: Any) -> str:
    """Classify a code as one of FIPS_TYPES by its width."""
    code = fips_lead_zero(fips)
    if not code:
        return "unknown"
    if code.upper() in ("US", "USA"):
        return "nation"
    if not code.isdigit():
        return "unknown"
    return FIPS_WIDTHS.get(len(code), "unknown")


def fips_to_state_abbr(fips: Any) -> Optional[str]:
    code = fips_lead_zero(fips)
    if not code or not code.isdigit() or len(code) < 2:
        return None
    state = STATES.get(code[:2])
    return state[0] if state else None


def fips_to_state_name(fips: Any) -> Optional[str]:
    code = fips_lead_zero(fips)
    if not code or not code.isdigit() or len(code) < 2:
        return None
    state = STATES.get(code[:2])
    return state[1] if state else None


async def name_to_fips(area: str, engine) -> NameResolution:
    """
    Translate a place name into census codes.

    State names and postal abbreviations are answered locally; other names
    go to the engine's lookup table. Digit strings are codes already.

    Args:
        area: Place name or code supplied by the caller
        engine: Analysis engine client

    Returns:
        Resolved with the matching codes, or NotAName carrying the input
    """
    text = str(area).strip()
    if not text or text.isdigit() or fips_type(text) == "nation":
        return NotAName(text)

    state_code = _STATE_BY_NAME.get(text.lower())
    if state_code:
        return Resolved([state_code])

    codes = await engine.name2fips(text)
    if not codes:
        logger.info(f"'{text}' is not a known place name, treating it as a code")
        return NotAName(text)
    return Resolved([fips_lead_zero(code) for code in codes])


async def resolve(area: str, scale: Optional[str], engine) -> Union[str, List[str]]:
    """
    Turn a name or code into the code(s) to analyze at the requested scale.

    Args:
        area: Place name or census code
        scale: Target geography type ("county", "blockgroup", ...) or None
        engine: Analysis engine client

    Returns:
        The single code when no conversion applies, otherwise the list of
        contained (or containing) codes
    """
    resolution = await name_to_fips(area, engine)
    if isinstance(resolution, Resolved):
        codes = resolution.codes
    else:
        codes = [fips_lead_zero(resolution.original)]

    unchanged = codes[0] if len(codes) == 1 else codes
    ftype = fips_type(codes[0])

    if scale is None or ftype == scale:
        return unchanged

    if scale == "county":
        if ftype == "state":
            converted: List[str] = []
            for code in codes:
                converted.extend(await engine.counties_in_state(code))
            return converted
        if ftype in ("tract", "blockgroup", "block"):
            # contract to the containing counties
            return list(dict.fromkeys(code[:5] for code in codes))
        return unchanged

    if scale == "blockgroup":
        converted = []
        for code in codes:
            converted.extend(await engine.blockgroups_in_fips(code))
        return converted

    return unchanged
