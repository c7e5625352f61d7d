from __future__ import annotations

import re
from typing import Dict, List, Tuple


# Region names (prefectures, sub-prefectural regions, sea areas).
REGION_MAP: Dict[str, str] = {
    "北海道": "HOKKAIDO", "青森": "AOMORI", "岩手": "IWATE", "宮城": "MIYAGI", "秋田": "AKITA",
    "山形": "YAMAGATA", "福島": "FUKUSHIMA", "茨城": "IBARAKI", "栃木": "TOCHIGI", "群馬": "GUNMA",
    "埼玉": "SAITAMA", "千葉": "CHIBA", "東京": "TOKYO", "神奈川": "KANAGAWA", "新潟": "NIIGATA",
    "富山": "TOYAMA", "石川": "ISHIKAWA", "福井": "FUKUI", "山梨": "YAMANASHI", "長野": "NAGANO",
    "岐阜": "GIFU", "静岡": "SHIZUOKA", "愛知": "AICHI", "三重": "MIE", "滋賀": "SHIGA",
    "京都": "KYOTO", "大阪": "OSAKA", "兵庫": "HYOGO", "奈良": "NARA", "和歌山": "WAKAYAMA",
    "鳥取": "TOTTORI", "島根": "SHIMANE", "岡山": "OKAYAMA", "広島": "HIROSHIMA", "山口": "YAMAGUCHI",
    "徳島": "TOKUSHIMA", "香川": "KAGAWA", "愛媛": "EHIME", "高知": "KOCHI", "福岡": "FUKUOKA",
    "佐賀": "SAGA", "長崎": "NAGASAKI", "熊本": "KUMAMOTO", "大分": "OITA", "宮崎": "MIYAZAKI",
    "鹿児島": "KAGOSHIMA", "沖縄": "OKINAWA",
    "トカラ": "TOKARA", "奄美": "AMAMI", "種子島": "TANEGASHIMA", "屋久島": "YAKUSHIMA",
    "伊豆": "IZU", "小笠原": "OGASAWARA", "房総": "BOSO", "紀伊": "KII", "能登": "NOTO",
    "宗谷地方": "SOYA REGION", "十勝": "TOKACHI", "釧路": "KUSHIRO", "根室": "NEMURO",
    "胆振": "IBURI", "日高": "HIDAKA", "渡島": "OSHIMA", "石狩": "ISHIKARI", "網走": "ABASHIRI",
    "会津": "AIZU", "中越": "CHUETSU", "上越": "JOETSU", "下越": "KAETSU",
    "有明海": "ARIAKE SEA", "三陸": "SANRIKU", "相模": "SAGAMI", "駿河": "SURUGA",
}

# Descriptive suffixes, directions and geographic qualifiers.
SUFFIX_MAP: Dict[str, str] = {
    "県": " PREF", "府": " PREF", "都": " METRO", "道": "",
    "日本海": " SEA OF JAPAN", "太平洋": " PACIFIC", "オホーツク海": " OKHOTSK", "東シナ海": " EAST CHINA SEA",
    "沿岸": " COAST", "湾": " BAY", "灘": " SEA", "海峡": " STRAIT", "諸島": " ISLANDS", "列島": " ISLANDS",
    "近海": " NEAR SEA", "外洋": " OPEN SEA", "連島": " ISLANDS", "沖": " OFF",
    "中通り": " NAKADORI", "浜通り": " HAMADORI",
    "東方沖": " EAST OFF", "西方沖": " WEST OFF", "南方沖": " SOUTH OFF", "北方沖": " NORTH OFF",
    "北東部": " NORTH EAST", "北西部": " NORTH WEST", "南東部": " SOUTH EAST", "南西部": " SOUTH WEST",
    "北部": " NORTH", "南部": " SOUTH", "東部": " EAST", "西部": " WEST", "中部": " CENTRAL",
    "北東": " NORTH EAST", "北西": " NORTH WEST", "南東": " SOUTH EAST", "南西": " SOUTH WEST",
    "地方": " REGION", "半島": " PENINSULA", "島": " ISLAND", "内陸": " INLAND", "付近": " VICINITY",
    "北": " NORTH", "南": " SOUTH", "東": " EAST", "西": " WEST",
    "中南部": " CENTRAL SOUTH",
}

_SPACE_RE = re.compile(r"\s+")


def _longest_first(table: Dict[str, str]) -> List[Tuple[str, str]]:
    # sorted() is stable, so equal-length keys keep their table order
    return sorted(table.items(), key=lambda kv: len(kv[0]), reverse=True)


_REGION_ORDER = _longest_first(REGION_MAP)
_SUFFIX_ORDER = _longest_first(SUFFIX_MAP)


def translate(raw: str | None) -> str:
    """
    Map a Japanese place name to the uppercase display vocabulary.

    Region names are substituted first, then suffixes/directions, each
    longest key first so a one-glyph direction never eats a compound term.
    Anything without a dictionary entry passes through unchanged.
    """
    if not raw:
        return ""
    text = str(raw)
    for key, value in _REGION_ORDER:
        if key in text:
            # padded so a region after a suffix ("県能登") stays a separate word
            text = text.replace(key, f" {value} ")
    for key, value in _SUFFIX_ORDER:
        if key in text:
            text = text.replace(key, value)
    return _SPACE_RE.sub(" ", text).strip().upper()
