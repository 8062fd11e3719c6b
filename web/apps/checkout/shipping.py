"""Flat shipping fees per destination prefecture.

Fees are integer yen. A fee is charged only when at least one item in the
cart is shipped at the buyer's expense; otherwise shipping is free whatever
the destination.
"""

from enum import Enum
from typing import Optional


class Prefecture(str, Enum):
    HOKKAIDO = "Hokkaido"
    AOMORI = "Aomori"
    IWATE = "Iwate"
    MIYAGI = "Miyagi"
    AKITA = "Akita"
    YAMAGATA = "Yamagata"
    FUKUSHIMA = "Fukushima"
    IBARAKI = "Ibaraki"
    TOCHIGI = "Tochigi"
    GUNMA = "Gunma"
    SAITAMA = "Saitama"
    CHIBA = "Chiba"
    TOKYO = "Tokyo"
    KANAGAWA = "Kanagawa"
    NIIGATA = "Niigata"
    TOYAMA = "Toyama"
    ISHIKAWA = "Ishikawa"
    FUKUI = "Fukui"
    YAMANASHI = "Yamanashi"
    NAGANO = "Nagano"
    GIFU = "Gifu"
    SHIZUOKA = "Shizuoka"
    AICHI = "Aichi"
    MIE = "Mie"
    SHIGA = "Shiga"
    KYOTO = "Kyoto"
    OSAKA = "Osaka"
    HYOGO = "Hyogo"
    NARA = "Nara"
    WAKAYAMA = "Wakayama"
    TOTTORI = "Tottori"
    SHIMANE = "Shimane"
    OKAYAMA = "Okayama"
    HIROSHIMA = "Hiroshima"
    YAMAGUCHI = "Yamaguchi"
    TOKUSHIMA = "Tokushima"
    KAGAWA = "Kagawa"
    EHIME = "Ehime"
    KOCHI = "Kochi"
    FUKUOKA = "Fukuoka"
    SAGA = "Saga"
    NAGASAKI = "Nagasaki"
    KUMAMOTO = "Kumamoto"
    OITA = "Oita"
    MIYAZAKI = "Miyazaki"
    KAGOSHIMA = "Kagoshima"
    OKINAWA = "Okinawa"


P = Prefecture

DEFAULT_SHIPPING_FEE = 800

SHIPPING_FEES: dict[Prefecture, int] = {
    # Hokkaido
    P.HOKKAIDO: 1200,
    # Tohoku
    P.AOMORI: 900, P.IWATE: 900, P.MIYAGI: 900,
    P.AKITA: 900, P.YAMAGATA: 900, P.FUKUSHIMA: 900,
    # Kanto
    P.IBARAKI: 700, P.TOCHIGI: 700, P.GUNMA: 700, P.SAITAMA: 700,
    P.CHIBA: 700, P.TOKYO: 700, P.KANAGAWA: 700, P.YAMANASHI: 700,
    # Shinetsu / Hokuriku
    P.NIIGATA: 800, P.NAGANO: 800, P.TOYAMA: 800, P.ISHIKAWA: 800,
    P.FUKUI: 800,
    # Tokai
    P.GIFU: 600, P.SHIZUOKA: 600, P.AICHI: 500, P.MIE: 600,
    # Kansai
    P.SHIGA: 700, P.KYOTO: 700, P.OSAKA: 700, P.HYOGO: 700,
    P.NARA: 700, P.WAKAYAMA: 700,
    # Chugoku
    P.TOTTORI: 900, P.SHIMANE: 900, P.OKAYAMA: 900,
    P.HIROSHIMA: 900, P.YAMAGUCHI: 900,
    # Shikoku
    P.TOKUSHIMA: 1000, P.KAGAWA: 1000, P.EHIME: 1000, P.KOCHI: 1000,
    # Kyushu
    P.FUKUOKA: 1100, P.SAGA: 1100, P.NAGASAKI: 1100, P.KUMAMOTO: 1100,
    P.OITA: 1100, P.MIYAZAKI: 1100, P.KAGOSHIMA: 1100,
    # Okinawa
    P.OKINAWA: 1500,
}

# Japanese names as entered in address forms, without the 都/道/府/県 suffix.
_KANJI_NAMES: dict[str, Prefecture] = {
    "北海": P.HOKKAIDO, "青森": P.AOMORI, "岩手": P.IWATE, "宮城": P.MIYAGI,
    "秋田": P.AKITA, "山形": P.YAMAGATA, "福島": P.FUKUSHIMA, "茨城": P.IBARAKI,
    "栃木": P.TOCHIGI, "群馬": P.GUNMA, "埼玉": P.SAITAMA, "千葉": P.CHIBA,
    "東京": P.TOKYO, "神奈川": P.KANAGAWA, "新潟": P.NIIGATA, "富山": P.TOYAMA,
    "石川": P.ISHIKAWA, "福井": P.FUKUI, "山梨": P.YAMANASHI, "長野": P.NAGANO,
    "岐阜": P.GIFU, "静岡": P.SHIZUOKA, "愛知": P.AICHI, "三重": P.MIE,
    "滋賀": P.SHIGA, "京都": P.KYOTO, "大阪": P.OSAKA, "兵庫": P.HYOGO,
    "奈良": P.NARA, "和歌山": P.WAKAYAMA, "鳥取": P.TOTTORI, "島根": P.SHIMANE,
    "岡山": P.OKAYAMA, "広島": P.HIROSHIMA, "山口": P.YAMAGUCHI, "徳島": P.TOKUSHIMA,
    "香川": P.KAGAWA, "愛媛": P.EHIME, "高知": P.KOCHI, "福岡": P.FUKUOKA,
    "佐賀": P.SAGA, "長崎": P.NAGASAKI, "熊本": P.KUMAMOTO, "大分": P.OITA,
    "宮崎": P.MIYAZAKI, "鹿児島": P.KAGOSHIMA, "沖縄": P.OKINAWA,
}

_ROMAJI_NAMES: dict[str, Prefecture] = {p.value.lower(): p for p in Prefecture}
_ROMAJI_SUFFIXES = ("-to", "-do", "-fu", "-ken", " to", " do", " fu", " ken", " prefecture")


def resolve_region(value: Optional[str]) -> Optional[Prefecture]:
    """Map a free-form region string to a prefecture, or None if unknown.

    Accepts romanised names in any case, with or without the
    administrative suffix ("Tokyo", "tokyo-to", "Osaka Prefecture"), and
    Japanese names with or without 都/道/府/県.
    """
    if not value or not value.strip():
        return None
    raw = value.strip()

    key = raw.lower()
    if key in _ROMAJI_NAMES:
        return _ROMAJI_NAMES[key]
    for suffix in _ROMAJI_SUFFIXES:
        if key.endswith(suffix) and key[: -len(suffix)] in _ROMAJI_NAMES:
            return _ROMAJI_NAMES[key[: -len(suffix)]]

    if raw in _KANJI_NAMES:
        return _KANJI_NAMES[raw]
    if raw[-1] in "都道府県" and raw[:-1] in _KANJI_NAMES:
        return _KANJI_NAMES[raw[:-1]]
    return None


def shipping_fee(region: Optional[str], requires_buyer_shipping: bool) -> int:
    """Return the shipping fee for a destination.

    Args:
        region: Destination prefecture as entered by the buyer; may be
            missing or unrecognised.
        requires_buyer_shipping: Whether any cart item is shipped at the
            buyer's expense.

    Returns:
        int: 0 when the buyer pays no shipping, the table fee for a known
        prefecture, otherwise ``DEFAULT_SHIPPING_FEE``.
    """
    if not requires_buyer_shipping:
        return 0
    prefecture = resolve_region(region)
    if prefecture is None:
        return DEFAULT_SHIPPING_FEE
    return SHIPPING_FEES[prefecture]
