"""Name and team-code normalization shared by every matching step.

Handles common variations across providers and sportsbooks:
- Accents: "Luka Dončić" → "luka doncic"
- Punctuation: "P.J. Tucker" → "pj tucker"
- Case: "LEBRON JAMES" → "lebron james"
- Extra spaces: "Kyle  Lowry" → "kyle lowry"
- Team codes: "GS" → "GSW", "UTAH" → "UTA", "Golden State Warriors" → "GSW"

All name and team comparisons in the package go through this module;
there is no second normalization path.
"""
import re
import unicodedata
from typing import Optional

SUFFIXES = {'jr', 'sr', 'ii', 'iii', 'iv', 'v'}

_NON_ALNUM = re.compile(r'[^a-z0-9 ]')

# Provider-specific team codes → canonical 3-letter code
TEAM_ALIASES = {
    'GS': 'GSW',
    'GOS': 'GSW',
    'SA': 'SAS',
    'SAN': 'SAS',
    'UTAH': 'UTA',
    'UTH': 'UTA',
    'NO': 'NOP',
    'NOR': 'NOP',
    'NOH': 'NOP',
    'NY': 'NYK',
    'NYN': 'NYK',
    'WSH': 'WAS',
    'PHO': 'PHX',
    'BRK': 'BKN',
    'BK': 'BKN',
    'NJN': 'BKN',
    'CHO': 'CHA',
    'CHH': 'CHA',
    'SEA': 'OKC',
}

# Full franchise names (as the odds feed sends them) → canonical code
TEAM_NAME_TO_ABBREV = {
    'atlanta hawks': 'ATL',
    'boston celtics': 'BOS',
    'brooklyn nets': 'BKN',
    'charlotte hornets': 'CHA',
    'chicago bulls': 'CHI',
    'cleveland cavaliers': 'CLE',
    'dallas mavericks': 'DAL',
    'denver nuggets': 'DEN',
    'detroit pistons': 'DET',
    'golden state warriors': 'GSW',
    'houston rockets': 'HOU',
    'indiana pacers': 'IND',
    'los angeles clippers': 'LAC',
    'la clippers': 'LAC',
    'los angeles lakers': 'LAL',
    'memphis grizzlies': 'MEM',
    'miami heat': 'MIA',
    'milwaukee bucks': 'MIL',
    'minnesota timberwolves': 'MIN',
    'new orleans pelicans': 'NOP',
    'new york knicks': 'NYK',
    'oklahoma city thunder': 'OKC',
    'orlando magic': 'ORL',
    'philadelphia 76ers': 'PHI',
    'phoenix suns': 'PHX',
    'portland trail blazers': 'POR',
    'sacramento kings': 'SAC',
    'san antonio spurs': 'SAS',
    'toronto raptors': 'TOR',
    'utah jazz': 'UTA',
    'washington wizards': 'WAS',
}


def normalize(name: str) -> str:
    """
    Canonical comparison form of a name.

    Steps:
    1. Strip diacritics (NFD decomposition, drop combining marks)
    2. Lowercase
    3. Turn whitespace runs into single spaces
    4. Drop anything outside [a-z0-9 ]
    5. Collapse and trim whitespace

    Idempotent: normalize(normalize(s)) == normalize(s).

    Examples:
        >>> normalize("Luka Dončić")
        'luka doncic'
        >>> normalize("P.J. Tucker")
        'pj tucker'
        >>> normalize("  Kyle   Lowry ")
        'kyle lowry'
    """
    if not name:
        return ""

    name = _strip_diacritics(name).lower()
    name = ' '.join(name.split())
    name = _NON_ALNUM.sub('', name)
    return ' '.join(name.split())


def _strip_diacritics(name: str) -> str:
    """Converts 'č' → 'c', 'ś' → 's', 'ž' → 'z', etc."""
    decomposed = unicodedata.normalize('NFD', name)
    return ''.join(c for c in decomposed if unicodedata.category(c) != 'Mn')


def strip_suffix(normalized_name: str) -> str:
    """
    Drop a trailing generational suffix from an already-normalized name.

    Examples:
        >>> strip_suffix("tim hardaway jr")
        'tim hardaway'
        >>> strip_suffix("kelly oubre")
        'kelly oubre'
    """
    parts = normalized_name.split()
    if len(parts) > 1 and parts[-1] in SUFFIXES:
        return ' '.join(parts[:-1])
    return normalized_name


def team_alias(abbrev: str) -> str:
    """
    Canonical 3-letter team code. Unknown codes pass through uppercased.

    Examples:
        >>> team_alias("gs")
        'GSW'
        >>> team_alias("UTAH")
        'UTA'
        >>> team_alias("lal")
        'LAL'
    """
    if not abbrev:
        return ""
    code = abbrev.strip().upper()
    return TEAM_ALIASES.get(code, code)


def team_abbrev_from_name(team_name: str) -> Optional[str]:
    """
    Map a full franchise name (or any code) to the canonical team code.

    Returns None when the name is not recognised.

    Examples:
        >>> team_abbrev_from_name("Golden State Warriors")
        'GSW'
        >>> team_abbrev_from_name("GS")
        'GSW'
    """
    if not team_name:
        return None
    key = normalize(team_name)
    if key in TEAM_NAME_TO_ABBREV:
        return TEAM_NAME_TO_ABBREV[key]
    code = team_alias(team_name)
    if code in TEAM_NAME_TO_ABBREV.values():
        return code
    return None


def teams_equal(a: str, b: str) -> bool:
    """Compare two team references (codes or full names)."""
    left = team_abbrev_from_name(a) or team_alias(a)
    right = team_abbrev_from_name(b) or team_alias(b)
    return bool(left) and left == right


def match_rank(query: str, candidate: str) -> Optional[int]:
    """
    Rank how well a candidate name matches a search query.

    Returns:
        0 for an exact normalized match, 1 when the candidate starts with
        the query, 2 when every query token appears in the candidate,
        None otherwise. Lower is better.

    Examples:
        >>> match_rank("lebron james", "LeBron James")
        0
        >>> match_rank("lebron", "LeBron James")
        1
        >>> match_rank("james lebron", "LeBron James")
        2
    """
    q = normalize(query)
    c = normalize(candidate)
    if not q or not c:
        return None
    if q == c or strip_suffix(q) == strip_suffix(c):
        return 0
    if c.startswith(q):
        return 1
    if all(token in c for token in q.split()):
        return 2
    return None


def player_name_matches(player_name: str, text: str) -> bool:
    """
    Whether a sportsbook outcome label refers to ``player_name``.

    Accepts normalized equality, a label that starts with the full name,
    or first AND last token both present. Generational suffixes are
    ignored on both sides. A single shared token is never enough when the
    player name has two or more tokens.

    Examples:
        >>> player_name_matches("LeBron James", "LeBron James")
        True
        >>> player_name_matches("LeBron James", "Lebron James Over")
        True
        >>> player_name_matches("Jaren Jackson Jr", "Jaren Jackson")
        True
        >>> player_name_matches("LeBron James", "Bronny James")
        False
    """
    target = strip_suffix(normalize(player_name))
    label = strip_suffix(normalize(text))
    if not target or not label:
        return False
    if label == target:
        return True
    if label.startswith(target + ' '):
        return True

    tokens = target.split()
    label_tokens = label.split()
    if len(tokens) < 2:
        return tokens[0] in label_tokens
    return tokens[0] in label_tokens and tokens[-1] in label_tokens
