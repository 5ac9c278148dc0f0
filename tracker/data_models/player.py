"""
Player data models for the profile sync core.

Provides immutable data transfer objects for player snapshots as returned by
the remote service, along with the codec used both for API payloads and for
the opaque blobs kept by the record store.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tracker.constants import RankingDefaults, SyncConstants
from tracker.utils.exceptions import DecodeError

ROLE_NAMES = {
    'admin': 'Elder',
    'coleader': 'Co-Leader',
    'member': 'Member',
}


def _require(data: Dict[str, Any], key: str, kind: type):
    if key not in data or data[key] is None:
        raise DecodeError(f"missing required field '{key}'")
    return _typed(data, key, kind, None)


def _typed(data: Dict[str, Any], key: str, kind: type, default):
    value = data.get(key)
    if value is None:
        return default
    # bool is an int subclass, reject it for counters
    if kind is int and isinstance(value, bool):
        raise DecodeError(f"field '{key}' must be {kind.__name__}")
    if not isinstance(value, kind):
        raise DecodeError(f"field '{key}' must be {kind.__name__}, got {type(value).__name__}")
    return value


def _mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"{what} must be an object")
    return data


def _url_map(value: Any) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    value = _mapping(value, "url map")
    return {str(k): v for k, v in value.items() if v is not None}


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Convert the API's clan role names into display names."""
    if role is None:
        return None
    return ROLE_NAMES.get(role.lower(), role)


@dataclass(frozen=True)
class PlayerClan:
    """Clan affiliation of a player."""
    tag: str
    name: str
    clan_level: int
    badge_urls: Optional[Dict[str, str]] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PlayerClan':
        data = _mapping(data, "clan")
        return cls(
            tag=_require(data, 'tag', str),
            name=_require(data, 'name', str),
            clan_level=_typed(data, 'clanLevel', int, 0),
            badge_urls=_url_map(data.get('badgeUrls')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tag': self.tag,
            'name': self.name,
            'clanLevel': self.clan_level,
            'badgeUrls': dict(self.badge_urls) if self.badge_urls is not None else None,
        }


@dataclass(frozen=True)
class League:
    """League a player currently sits in."""
    id: int
    name: str
    icon_urls: Optional[Dict[str, str]] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'League':
        data = _mapping(data, "league")
        return cls(
            id=_require(data, 'id', int),
            name=_require(data, 'name', str),
            icon_urls=_url_map(data.get('iconUrls')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'iconUrls': dict(self.icon_urls) if self.icon_urls is not None else None,
        }


@dataclass(frozen=True)
class Season:
    """Legend league result for one season."""
    trophies: int
    id: Optional[str] = None
    rank: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Season':
        data = _mapping(data, "season")
        return cls(
            trophies=_typed(data, 'trophies', int, 0),
            id=_typed(data, 'id', str, None),
            rank=_typed(data, 'rank', int, None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'rank': self.rank, 'trophies': self.trophies}


@dataclass(frozen=True)
class LegendStatistics:
    """Legend league statistics across seasons."""
    legend_trophies: int
    current_season: Optional[Season] = None
    previous_season: Optional[Season] = None
    best_season: Optional[Season] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'LegendStatistics':
        data = _mapping(data, "legendStatistics")

        def season(key):
            value = data.get(key)
            return Season.from_api(value) if value is not None else None

        return cls(
            legend_trophies=_typed(data, 'legendTrophies', int, 0),
            current_season=season('currentSeason'),
            previous_season=season('previousSeason'),
            best_season=season('bestSeason'),
        )

    def to_dict(self) -> Dict[str, Any]:
        def season(value):
            return value.to_dict() if value is not None else None

        return {
            'legendTrophies': self.legend_trophies,
            'currentSeason': season(self.current_season),
            'previousSeason': season(self.previous_season),
            'bestSeason': season(self.best_season),
        }


@dataclass(frozen=True)
class PlayerItem:
    """A troop, hero, spell or piece of hero equipment."""
    name: str
    level: int
    max_level: int
    village: str
    super_troop_is_active: Optional[bool] = None

    @property
    def is_maxed(self) -> bool:
        return self.level >= self.max_level

    @property
    def is_super_troop(self) -> bool:
        return 'Super' in self.name or self.super_troop_is_active is True

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PlayerItem':
        data = _mapping(data, "item")
        return cls(
            name=_require(data, 'name', str),
            level=_require(data, 'level', int),
            max_level=_require(data, 'maxLevel', int),
            village=_typed(data, 'village', str, 'home'),
            super_troop_is_active=_typed(data, 'superTroopIsActive', bool, None),
        )

    def to_dict(self) -> Dict[str, Any]:
        item = {
            'name': self.name,
            'level': self.level,
            'maxLevel': self.max_level,
            'village': self.village,
        }
        if self.super_troop_is_active is not None:
            item['superTroopIsActive'] = self.super_troop_is_active
        return item


def items_from_api(value: Any, what: str) -> Optional[List[PlayerItem]]:
    """Decode an optional list of items."""
    if value is None:
        return None
    if not isinstance(value, list):
        raise DecodeError(f"{what} must be a list")
    return [PlayerItem.from_api(entry) for entry in value]


def items_to_list(items: Optional[List[PlayerItem]]) -> Optional[List[Dict[str, Any]]]:
    if items is None:
        return None
    return [item.to_dict() for item in items]


def calculate_progress(items: Optional[List[PlayerItem]]) -> float:
    """Percentage of total levels unlocked across a list of items."""
    if not items:
        return 0.0

    total_max_level = sum(item.max_level for item in items)
    total_current_level = sum(item.level for item in items)

    if total_max_level <= 0:
        return 0.0
    return total_current_level / total_max_level * 100.0


# Optional fields a partial response may omit. Everything else is a scalar
# that the remote service always sends (with defaults applied on decode).
OPTIONAL_FIELDS = (
    'town_hall_weapon_level',
    'role',
    'clan',
    'league',
    'troops',
    'heroes',
    'spells',
    'hero_equipment',
    'builder_hall_level',
    'builder_base_trophies',
    'best_builder_base_trophies',
    'legends',
)

COLLECTION_FIELDS = ('troops', 'heroes', 'spells', 'hero_equipment')


@dataclass(frozen=True, eq=False)
class PlayerSnapshot:
    """
    Full player entity as returned by the remote service.

    Two snapshots with the same tag denote the same player, so equality and
    hashing only look at the tag. Use ``to_dict()`` to compare contents.
    """
    tag: str
    name: str
    exp_level: int = 1
    trophies: int = 0
    best_trophies: int = 0
    donations: int = 0
    donations_received: int = 0
    attack_wins: int = 0
    defense_wins: int = 0
    town_hall_level: int = 1
    war_stars: int = 0
    clan_capital_contributions: int = 0

    town_hall_weapon_level: Optional[int] = None
    role: Optional[str] = None
    clan: Optional[PlayerClan] = None
    league: Optional[League] = None
    troops: Optional[List[PlayerItem]] = None
    heroes: Optional[List[PlayerItem]] = None
    spells: Optional[List[PlayerItem]] = None
    hero_equipment: Optional[List[PlayerItem]] = None
    builder_hall_level: Optional[int] = None
    builder_base_trophies: Optional[int] = None
    best_builder_base_trophies: Optional[int] = None
    legends: Optional[LegendStatistics] = None

    def __eq__(self, other):
        if not isinstance(other, PlayerSnapshot):
            return NotImplemented
        return self.tag == other.tag

    def __hash__(self):
        return hash(self.tag)

    @property
    def is_legend_league(self) -> bool:
        return self.league is not None and SyncConstants.LEGEND_LEAGUE_MARKER in self.league.name

    @property
    def has_unit_data(self) -> bool:
        return bool(self.troops)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PlayerSnapshot':
        """
        Decode a player payload.

        Missing counters fall back to the same defaults the service implies
        (experience level and town hall level 1, everything else 0).

        Raises:
            DecodeError: If the payload is malformed or lacks tag/name
        """
        data = _mapping(data, "player")

        def optional(key, decoder):
            value = data.get(key)
            return decoder(value) if value is not None else None

        return cls(
            tag=_require(data, 'tag', str),
            name=_require(data, 'name', str),
            exp_level=_typed(data, 'expLevel', int, 1),
            trophies=_typed(data, 'trophies', int, 0),
            best_trophies=_typed(data, 'bestTrophies', int, 0),
            donations=_typed(data, 'donations', int, 0),
            donations_received=_typed(data, 'donationsReceived', int, 0),
            attack_wins=_typed(data, 'attackWins', int, 0),
            defense_wins=_typed(data, 'defenseWins', int, 0),
            town_hall_level=_typed(data, 'townHallLevel', int, 1),
            war_stars=_typed(data, 'warStars', int, 0),
            clan_capital_contributions=_typed(data, 'clanCapitalContributions', int, 0),
            town_hall_weapon_level=_typed(data, 'townHallWeaponLevel', int, None),
            role=normalize_role(_typed(data, 'role', str, None)),
            clan=optional('clan', PlayerClan.from_api),
            league=optional('league', League.from_api),
            troops=items_from_api(data.get('troops'), 'troops'),
            heroes=items_from_api(data.get('heroes'), 'heroes'),
            spells=items_from_api(data.get('spells'), 'spells'),
            hero_equipment=items_from_api(data.get('heroEquipment'), 'heroEquipment'),
            builder_hall_level=_typed(data, 'builderHallLevel', int, None),
            builder_base_trophies=_typed(data, 'builderBaseTrophies', int, None),
            best_builder_base_trophies=_typed(data, 'bestBuilderBaseTrophies', int, None),
            legends=optional('legendStatistics', LegendStatistics.from_api),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Encode back into the API payload shape."""
        def optional(value):
            return value.to_dict() if value is not None else None

        return {
            'tag': self.tag,
            'name': self.name,
            'expLevel': self.exp_level,
            'trophies': self.trophies,
            'bestTrophies': self.best_trophies,
            'donations': self.donations,
            'donationsReceived': self.donations_received,
            'attackWins': self.attack_wins,
            'defenseWins': self.defense_wins,
            'townHallLevel': self.town_hall_level,
            'warStars': self.war_stars,
            'clanCapitalContributions': self.clan_capital_contributions,
            'townHallWeaponLevel': self.town_hall_weapon_level,
            'role': self.role,
            'clan': optional(self.clan),
            'league': optional(self.league),
            'troops': items_to_list(self.troops),
            'heroes': items_to_list(self.heroes),
            'spells': items_to_list(self.spells),
            'heroEquipment': items_to_list(self.hero_equipment),
            'builderHallLevel': self.builder_hall_level,
            'builderBaseTrophies': self.builder_base_trophies,
            'bestBuilderBaseTrophies': self.best_builder_base_trophies,
            'legendStatistics': optional(self.legends),
        }


@dataclass(frozen=True)
class PlayerRankings:
    """Ranking data for a player, best-effort."""
    tag: str
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    global_rank: Optional[int] = None
    local_rank: Optional[int] = None
    builder_global_rank: Optional[int] = None
    builder_local_rank: Optional[int] = None
    streak: int = 0

    @property
    def is_ranked(self) -> bool:
        return self.global_rank is not None or self.local_rank is not None

    @classmethod
    def unranked(cls, tag: str) -> 'PlayerRankings':
        """Explicit fallback used when rankings cannot be fetched."""
        return cls(
            tag=tag,
            country_code=RankingDefaults.COUNTRY_CODE,
            country_name=RankingDefaults.COUNTRY_NAME,
            streak=RankingDefaults.STREAK,
        )

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PlayerRankings':
        data = _mapping(data, "rankings")
        return cls(
            tag=_require(data, 'tag', str),
            country_code=_typed(data, 'countryCode', str, None),
            country_name=_typed(data, 'countryName', str, None),
            global_rank=_typed(data, 'globalRank', int, None),
            local_rank=_typed(data, 'localRank', int, None),
            builder_global_rank=_typed(data, 'builderGlobalRank', int, None),
            builder_local_rank=_typed(data, 'builderLocalRank', int, None),
            streak=_typed(data, 'streak', int, 0),
        )
