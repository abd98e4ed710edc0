from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class CategoryRule:
    """
    Declarative category rule. Matches when any keyword is a
    case-insensitive substring of title + description.
    """
    label: str
    keywords: Tuple[str, ...]


START_SIT_KEYWORDS = ("start/sit", "start-sit", "start or sit", "start 'em", "sit 'em", "starts and sits")

VIDEO_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("Dynasty", ("dynasty",)),
    CategoryRule("Rookies", ("rookie",)),
    CategoryRule("Trades", ("trade",)),
    CategoryRule("Waiver Wire", ("waiver",)),
    CategoryRule("Start/Sit", START_SIT_KEYWORDS),
    CategoryRule("Rankings", ("ranking",)),
    CategoryRule("News", ("news",)),
    CategoryRule("Podcasts", ("podcast",)),
)
VIDEO_DEFAULT_CATEGORY = "Analysis"

ARTICLE_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("Dynasty", ("dynasty",)),
    CategoryRule("Rookies", ("rookie",)),
    CategoryRule("Trades", ("trade",)),
    CategoryRule("Waiver Wire", ("waiver",)),
    CategoryRule("Start/Sit", START_SIT_KEYWORDS),
    CategoryRule("Rankings", ("ranking",)),
    CategoryRule("Analysis", ("analysis",)),
    CategoryRule("Podcasts", ("podcast",)),
)
ARTICLE_DEFAULT_CATEGORY = "News"

# Whole-word, case-sensitive
POSITION_TAGS = ("QB", "RB", "WR", "TE", "DST", "K")

# Case-insensitive phrase -> tag
FORMAT_TAGS: Dict[str, str] = {
    "half ppr": "Half-PPR",
    "half-ppr": "Half-PPR",
    "ppr": "PPR",
    "standard": "Standard",
    "superflex": "Superflex",
    "2qb": "2QB",
    "te premium": "TE Premium",
    "idp": "IDP",
    "best ball": "Best Ball",
    "dfs": "DFS",
    "daily fantasy": "DFS",
    "redraft": "Redraft",
    "keeper": "Keeper",
    "dynasty": "Dynasty",
}

PLAYER_NAMES = (
    "joe burrow", "patrick mahomes", "josh allen", "justin herbert", "lamar jackson",
    "jalen hurts", "dak prescott", "aaron rodgers", "c.j. stroud", "jayden daniels",
    "christian mccaffrey", "bijan robinson", "derrick henry", "breece hall", "saquon barkley",
    "jahmyr gibbs", "alvin kamara", "de'von achane", "james cook", "kyren williams",
    "tyreek hill", "justin jefferson", "ja'marr chase", "amon-ra st. brown", "aj brown",
    "ceedee lamb", "puka nacua", "garrett wilson", "davante adams", "mike evans",
    "travis kelce", "mark andrews", "george kittle", "sam laporta", "trey mcbride",
    "t.j. hockenson", "dallas goedert", "brock bowers", "kyle pitts", "dalton kincaid",
)

TEAM_NAMES = (
    "bengals", "chiefs", "bills", "chargers", "ravens", "eagles", "cowboys", "packers",
    "patriots", "broncos", "49ers", "vikings", "browns", "giants", "cardinals", "saints",
    "steelers", "titans", "colts", "jaguars", "texans", "raiders", "rams", "seahawks",
    "buccaneers", "falcons", "panthers", "bears", "lions", "commanders", "jets", "dolphins",
)

FANTASY_TERMS = (
    "fantasy football", "start/sit", "waiver wire", "rankings", "sleepers", "busts",
    "injury report", "injury", "questionable", "doubtful", "touchdown",
    "passing yards", "rushing yards", "receiving yards", "fantasy points",
    "ppr", "half ppr", "dynasty", "redraft", "keeper", "auction",
    "mock draft", "draft", "adp", "average draft position", "bye week", "playoffs",
)

# Leading words that disqualify a capitalised phrase from being a name.
PHRASE_STOPWORDS = frozenset({
    "the", "this", "that", "these", "those", "what", "when", "where", "which", "why",
    "how", "who", "and", "but", "for", "with", "from", "week", "our", "your", "his",
    "her", "their", "top", "best", "new", "all", "every", "round", "fantasy", "football",
    "nfl", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
})

GENERIC_FALLBACK_IMAGE = "https://images.unsplash.com/photo-1571019613454-1cb2f99b2d8b?w=400&h=300&fit=crop&q=80"

# Ordered: first substring match on the lowercased source name wins.
SOURCE_FALLBACK_IMAGES: Tuple[Tuple[str, str], ...] = (
    ("espn", "https://a.espncdn.com/i/espn/espn_logos/espn_red.png"),
    ("cbs", "/fallback-images/cbs-logo.png"),
    ("nfl", "/fallback-images/nfl-logo.png"),
    ("dynasty league football", "/fallback-images/dynasty-league-football-fallback.jpeg"),
    ("dlf", "/fallback-images/dynasty-league-football-fallback.jpeg"),
    ("dynasty nerds", "/fallback-images/dynasty-nerds-fallback.jpeg"),
    ("draft sharks", "/fallback-images/draftsharks-fallback.jpeg"),
)
