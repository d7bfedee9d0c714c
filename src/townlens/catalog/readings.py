"""Municipality reading registry.

Maps each municipality code to its display name and hiragana readings.
Lookups by reading are exact: "しんじゅく" does not match 新宿区
("しんじゅくく"). Hiragana spellings of a name (さいたま市) are registered
as additional readings under the canonical code, never as name aliases.
"""

import logging

from townlens.core.types import MunicipalityIdentity
from townlens.utils import katakana_to_hiragana, normalize_label

logger = logging.getLogger(__name__)


def _m(code: str, name: str, *readings: str) -> MunicipalityIdentity:
    return MunicipalityIdentity(code=code, display_name=name, readings=tuple(readings))


MUNICIPALITIES: tuple[MunicipalityIdentity, ...] = (
    # 東京23区
    _m("13101", "千代田区", "ちよだく"),
    _m("13102", "中央区", "ちゅうおうく"),
    _m("13103", "港区", "みなとく"),
    _m("13104", "新宿区", "しんじゅくく"),
    _m("13105", "文京区", "ぶんきょうく"),
    _m("13106", "台東区", "たいとうく"),
    _m("13107", "墨田区", "すみだく"),
    _m("13108", "江東区", "こうとうく"),
    _m("13109", "品川区", "しながわく"),
    _m("13110", "目黒区", "めぐろく"),
    _m("13111", "大田区", "おおたく"),
    _m("13112", "世田谷区", "せたがやく"),
    _m("13113", "渋谷区", "しぶやく"),
    _m("13114", "中野区", "なかのく"),
    _m("13115", "杉並区", "すぎなみく"),
    _m("13116", "豊島区", "としまく"),
    _m("13117", "北区", "きたく"),
    _m("13118", "荒川区", "あらかわく"),
    _m("13119", "板橋区", "いたばしく"),
    _m("13120", "練馬区", "ねりまく"),
    _m("13121", "足立区", "あだちく"),
    _m("13122", "葛飾区", "かつしかく"),
    _m("13123", "江戸川区", "えどがわく"),
    # 多摩地域
    _m("13201", "八王子市", "はちおうじし"),
    _m("13202", "立川市", "たちかわし"),
    _m("13203", "武蔵野市", "むさしのし"),
    _m("13204", "三鷹市", "みたかし"),
    _m("13208", "調布市", "ちょうふし"),
    _m("13209", "町田市", "まちだし"),
    # 政令指定都市
    _m("01100", "札幌市", "さっぽろし"),
    _m("04100", "仙台市", "せんだいし"),
    _m("11100", "さいたま市", "さいたまし"),
    _m("12100", "千葉市", "ちばし"),
    _m("14100", "横浜市", "よこはまし"),
    _m("14130", "川崎市", "かわさきし"),
    _m("14150", "相模原市", "さがみはらし"),
    _m("15100", "新潟市", "にいがたし"),
    _m("22100", "静岡市", "しずおかし"),
    _m("22130", "浜松市", "はままつし"),
    _m("23100", "名古屋市", "なごやし"),
    _m("26100", "京都市", "きょうとし"),
    _m("27100", "大阪市", "おおさかし"),
    _m("27140", "堺市", "さかいし"),
    _m("28100", "神戸市", "こうべし"),
    _m("33100", "岡山市", "おかやまし"),
    _m("34100", "広島市", "ひろしまし"),
    _m("40100", "北九州市", "きたきゅうしゅうし"),
    _m("40130", "福岡市", "ふくおかし"),
    _m("43100", "熊本市", "くまもとし"),
    # 横浜市の区
    _m("14101", "横浜市鶴見区", "よこはましつるみく", "つるみく"),
    _m("14102", "横浜市神奈川区", "よこはましかながわく", "かながわく"),
    # 首都圏・近畿圏の主要都市
    _m("11203", "川口市", "かわぐちし"),
    _m("12203", "市川市", "いちかわし"),
    _m("12204", "船橋市", "ふなばしし"),
    _m("12217", "柏市", "かしわし"),
    _m("14204", "鎌倉市", "かまくらし"),
    _m("14205", "藤沢市", "ふじさわし"),
    _m("23212", "安城市", "あんじょうし"),
    _m("27203", "豊中市", "とよなかし"),
    _m("27205", "吹田市", "すいたし"),
    _m("28204", "西宮市", "にしのみやし"),
)


def _build_indexes(entries):
    by_code: dict[str, MunicipalityIdentity] = {}
    by_name: dict[str, MunicipalityIdentity] = {}
    by_reading: dict[str, list[str]] = {}
    for entry in entries:
        if entry.code in by_code:
            raise ValueError(f"Duplicate municipality code: {entry.code}")
        if not entry.readings:
            raise ValueError(f"Municipality {entry.code} has no readings")
        by_code[entry.code] = entry
        by_name[normalize_label(entry.display_name)] = entry
        for reading in entry.readings:
            names = by_reading.setdefault(reading, [])
            if entry.display_name not in names:
                names.append(entry.display_name)
    return by_code, by_name, by_reading


_BY_CODE, _BY_NAME, _BY_READING = _build_indexes(MUNICIPALITIES)


def get_reading(name: str) -> list[str]:
    """Readings registered for a display name; [] when unregistered."""
    entry = _BY_NAME.get(normalize_label(name))
    return list(entry.readings) if entry else []


def has_reading(name: str) -> bool:
    return normalize_label(name) in _BY_NAME


def find_by_reading(reading: str) -> list[str]:
    """Display names whose readings include ``reading`` exactly.

    Katakana input is folded to hiragana first; no prefix or fuzzy matching.
    """
    key = katakana_to_hiragana(normalize_label(reading))
    return list(_BY_READING.get(key, []))


def get_by_code(code: str) -> MunicipalityIdentity | None:
    return _BY_CODE.get(code)


def get_by_name(name: str) -> MunicipalityIdentity | None:
    return _BY_NAME.get(normalize_label(name))


def display_name(code: str) -> str:
    """Display name for a code, falling back to the code itself."""
    entry = _BY_CODE.get(code)
    return entry.display_name if entry else code


def resolve(query: str) -> MunicipalityIdentity | None:
    """Resolve a code, display name or exact reading to one municipality.

    Returns None when nothing matches or when a reading is ambiguous.
    """
    text = normalize_label(query)
    if text in _BY_CODE:
        return _BY_CODE[text]
    if text in _BY_NAME:
        return _BY_NAME[text]
    names = find_by_reading(text)
    if len(names) == 1:
        return _BY_NAME[normalize_label(names[0])]
    if len(names) > 1:
        logger.info("Ambiguous reading %s matches %s", query, names)
    return None


def all_municipalities() -> list[MunicipalityIdentity]:
    return list(MUNICIPALITIES)
