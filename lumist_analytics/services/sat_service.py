"""
SAT test-center seat tracker.

Seats come from the get-sat-seats edge function; centers are normalised to a
binary open/full status with Vietnamese city names and map coordinates.
"""

import random
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from lumist_analytics.core.exceptions import EdgeFunctionError
from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import invoke_function
from lumist_analytics.models.sat import SatDate, SatSeats, TestCenter

logger = get_logger(__name__)

SEATS_FUNCTION = "get-sat-seats"

SAT_DATES = [
    SatDate(value=date(2025, 3, 8), label="March 8, 2025"),
    SatDate(value=date(2025, 5, 3), label="May 3, 2025"),
    SatDate(value=date(2025, 6, 7), label="June 7, 2025"),
    SatDate(value=date(2025, 8, 23), label="August 23, 2025"),
    SatDate(value=date(2025, 10, 4), label="October 4, 2025"),
    SatDate(value=date(2025, 11, 1), label="November 1, 2025"),
    SatDate(value=date(2025, 12, 6), label="December 6, 2025"),
    SatDate(value=date(2026, 3, 14), label="March 14, 2026"),
    SatDate(value=date(2026, 5, 2), label="May 2, 2026"),
    SatDate(value=date(2026, 6, 6), label="June 6, 2026"),
    SatDate(value=date(2026, 8, 22), label="August 22, 2026"),
    SatDate(value=date(2026, 10, 3), label="October 3, 2026"),
    SatDate(value=date(2026, 11, 7), label="November 7, 2026"),
    SatDate(value=date(2026, 12, 5), label="December 5, 2026"),
    # 2027 dates are tentative
    SatDate(value=date(2027, 3, 13), label="March 13, 2027"),
    SatDate(value=date(2027, 5, 1), label="May 1, 2027"),
    SatDate(value=date(2027, 6, 5), label="June 5, 2027"),
]

# Upper-case raw city -> accented Vietnamese name
CITY_ALIASES = {
    "HAIPHONG": "Hải Phòng",
    "HAI PHONG": "Hải Phòng",
    "HAI PHONG CITY": "Hải Phòng",
    "TP HAI PHONG": "Hải Phòng",
    "DANANG": "Đà Nẵng",
    "DA NANG": "Đà Nẵng",
    "DA NANG CITY": "Đà Nẵng",
    "TP DA NANG": "Đà Nẵng",
    "HANOI": "Hà Nội",
    "HA NOI": "Hà Nội",
    "HA NOI CITY": "Hà Nội",
    "TP HA NOI": "Hà Nội",
    "HCM": "Hồ Chí Minh",
    "HCMC": "Hồ Chí Minh",
    "HO CHI MINH": "Hồ Chí Minh",
    "HO CHI MINH CITY": "Hồ Chí Minh",
    "TP HO CHI MINH": "Hồ Chí Minh",
    "TP HCM": "Hồ Chí Minh",
    "CAN THO": "Cần Thơ",
    "CAN THO CITY": "Cần Thơ",
    "TP CAN THO": "Cần Thơ",
    "HUE": "Thừa Thiên Huế",
    "HUE CITY": "Thừa Thiên Huế",
    "TP HUE": "Thừa Thiên Huế",
    "THUA THIEN HUE": "Thừa Thiên Huế",
    "KHANH HOA": "Khánh Hòa",
    "NHA TRANG": "Nha Trang",
    "NHA TRANG CITY": "Nha Trang",
    "TP NHA TRANG": "Nha Trang",
    "VUNG TAU": "Vũng Tàu",
    "VUNG TAU CITY": "Vũng Tàu",
    "TP VUNG TAU": "Vũng Tàu",
    "BA RIA VUNG TAU": "Bà Rịa - Vũng Tàu",
    "BA RIA": "Bà Rịa - Vũng Tàu",
    "BIEN HOA": "Biên Hòa",
    "BIEN HOA CITY": "Biên Hòa",
    "TP BIEN HOA": "Biên Hòa",
    "DONG NAI": "Đồng Nai",
    "DONG NAI PROVINCE": "Đồng Nai",
    "BINH DUONG": "Bình Dương",
    "BINH DUONG PROVINCE": "Bình Dương",
    "BINH DUONG CITY": "Bình Dương",
    "THU DUC": "Thủ Đức",
    "THU DUC CITY": "Thủ Đức",
    "TP THU DUC": "Thủ Đức",
    "HUNG YEN": "Hưng Yên",
    "HUNG YEN PROVINCE": "Hưng Yên",
    "HUNG YEN CITY": "Hưng Yên",
    "TP HUNG YEN": "Hưng Yên",
    "QUANG NINH": "Quảng Ninh",
    "QUANG NINH PROVINCE": "Quảng Ninh",
    "BAC NINH": "Bắc Ninh",
    "BAC NINH CITY": "Bắc Ninh",
    "BAC NINH PROVINCE": "Bắc Ninh",
    "TP BAC NINH": "Bắc Ninh",
    "HAI DUONG": "Hải Dương",
    "HAI DUONG CITY": "Hải Dương",
    "HAI DUONG PROVINCE": "Hải Dương",
    "TP HAI DUONG": "Hải Dương",
    "THAI NGUYEN": "Thái Nguyên",
    "THAI NGUYEN CITY": "Thái Nguyên",
    "TP THAI NGUYEN": "Thái Nguyên",
    "NGHE AN": "Nghệ An",
    "NGHE AN PROVINCE": "Nghệ An",
    "THANH HOA": "Thanh Hóa",
    "THANH HOA CITY": "Thanh Hóa",
    "THANH HOA PROVINCE": "Thanh Hóa",
    "TP THANH HOA": "Thanh Hóa",
    "BINH THUAN": "Bình Thuận",
    "BINH THUAN PROVINCE": "Bình Thuận",
    "LAM DONG": "Lâm Đồng",
    "LAM DONG PROVINCE": "Lâm Đồng",
    "DA LAT": "Đà Lạt",
    "DA LAT CITY": "Đà Lạt",
    "TP DA LAT": "Đà Lạt",
    "DALAT": "Đà Lạt",
}

# Applied in order to an upper-cased city name
CITY_CLEANUP = [
    (re.compile(r"\s+CITY$"), ""),
    (re.compile(r"\s+PROVINCE$"), ""),
    (re.compile(r"\bTHANH PHO\b"), ""),
    (re.compile(r"\bTINH\b"), ""),
    (re.compile(r"\bVIETNAM\b"), ""),
    (re.compile(r"\bVN\b"), ""),
    (re.compile(r"^TP\.?\s*"), ""),
    (re.compile(r"[,.]"), ""),
    (re.compile(r"\s+"), " "),
]

# (lat, lng) of major cities, matched as substrings of "<center name> <city>"
CITY_COORDS = {
    "hanoi": (21.0285, 105.8542),
    "ha noi": (21.0285, 105.8542),
    "ho chi minh": (10.8231, 106.6297),
    "hcmc": (10.8231, 106.6297),
    "saigon": (10.8231, 106.6297),
    "sai gon": (10.8231, 106.6297),
    "thu duc": (10.8514, 106.7536),
    "da nang": (16.0544, 108.2022),
    "danang": (16.0544, 108.2022),
    "hai phong": (20.8449, 106.6881),
    "can tho": (10.0452, 105.7469),
    "nha trang": (12.2388, 109.1967),
    "hue": (16.4637, 107.5909),
    "vung tau": (10.3460, 107.0843),
    "bien hoa": (10.9574, 106.8426),
    "binh duong": (10.9804, 106.6519),
    "dong nai": (10.9574, 106.8426),
    "binh thanh": (10.8105, 106.7091),
    "district 1": (10.7756, 106.7019),
    "district 2": (10.7868, 106.7505),
    "district 7": (10.7340, 106.7218),
    "tan binh": (10.8014, 106.6528),
    "phu nhuan": (10.7997, 106.6802),
}

HO_CHI_MINH_CITY = (10.8231, 106.6297)
VIETNAM_CENTER = (106.0, 16.0)  # (lng, lat)


def future_sat_dates(today: Optional[date] = None) -> List[SatDate]:
    """Official SAT dates strictly after today."""
    today = today or date.today()
    return [d for d in SAT_DATES if d.value > today]


def normalize_city(raw_city: Optional[str]) -> str:
    """
    Map a raw city string from the seats API to its accented Vietnamese name.

    Tries the raw value, then a cleaned value (suffixes, "THANH PHO", "TINH",
    country markers, the "TP" prefix and punctuation removed), then the cleaned
    value with a "TP " prefix. Unmapped names are logged and title-cased.
    """
    if not raw_city:
        return ""

    raw_key = raw_city.strip().upper()
    if raw_key in CITY_ALIASES:
        return CITY_ALIASES[raw_key]

    cleaned = raw_key
    for pattern, replacement in CITY_CLEANUP:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = cleaned.strip()

    if cleaned in CITY_ALIASES:
        return CITY_ALIASES[cleaned]
    if f"TP {cleaned}" in CITY_ALIASES:
        return CITY_ALIASES[f"TP {cleaned}"]

    logger.warning(f"Unmapped city found: {cleaned!r} (raw input: {raw_city!r})")
    return " ".join(word[:1].upper() + word[1:].lower() for word in cleaned.split(" "))


def estimate_coordinates(
    center_name: str,
    city: str,
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    """
    (lng, lat) for a center without coordinates.

    Known cities get a small jitter so markers do not overlap; anything else
    lands near Ho Chi Minh City, where most centers are.
    """
    rng = rng or random.Random()
    search_text = f"{center_name} {city}".lower()
    for key, (lat, lng) in CITY_COORDS.items():
        if key in search_text:
            return lng + (rng.random() - 0.5) * 0.05, lat + (rng.random() - 0.5) * 0.05

    lat, lng = HO_CHI_MINH_CITY
    return lng + (rng.random() - 0.5) * 0.1, lat + (rng.random() - 0.5) * 0.1


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_full(center: Dict[str, Any]) -> bool:
    return (
        str(center.get("status") or "").lower() == "full"
        or center.get("seatsAvailable") is False
        or center.get("availableSeats") == 0
        or center.get("isFull") is True
    )


def transform_centers(payload: Any, rng: Optional[random.Random] = None) -> List[TestCenter]:
    """Normalise the seats payload (a list, or an object with testCenters/centers)."""
    if not payload:
        return []
    if isinstance(payload, list):
        raw_centers = payload
    else:
        raw_centers = payload.get("testCenters") or payload.get("centers") or []

    centers = []
    for index, raw in enumerate(raw_centers):
        name = raw.get("name") or raw.get("centerName") or "Unknown Center"
        lat = _to_float(raw.get("latitude") or raw.get("lat"))
        lng = _to_float(raw.get("longitude") or raw.get("lng") or raw.get("lon"))
        if lat and lng:
            coordinates = (lng, lat)
        else:
            coordinates = estimate_coordinates(raw.get("name") or "", raw.get("city") or "", rng)

        distance = _to_float(raw.get("distance")) if raw.get("distance") else None

        centers.append(TestCenter(
            id=str(raw.get("testCenterId") or raw.get("id") or f"center-{index}"),
            name=name,
            address=raw.get("address") or raw.get("streetAddress") or "",
            city=normalize_city(raw.get("city")),
            state=raw.get("state") or raw.get("province") or "",
            country=raw.get("country") or "VN",
            status="full" if _is_full(raw) else "available",
            distance=round(distance, 1) if distance is not None else None,
            coordinates=coordinates,
        ))
    return centers


def unique_locations(centers: Sequence[TestCenter]) -> List[str]:
    """"All" followed by the sorted distinct non-empty cities."""
    cities = {c.city.strip() for c in centers if c.city and c.city.strip()}
    return ["All"] + sorted(cities)


def filter_by_location(centers: Sequence[TestCenter], location: str = "All") -> List[TestCenter]:
    if location == "All":
        return list(centers)
    needle = location.lower()
    return [c for c in centers if needle in (c.city or "").lower()]


def center_of_markers(centers: Sequence[TestCenter]) -> Tuple[float, float]:
    """Mean (lng, lat) of the centers, or the centre of Vietnam when there are none."""
    if not centers:
        return VIETNAM_CENTER
    lng = sum(c.coordinates[0] for c in centers) / len(centers)
    lat = sum(c.coordinates[1] for c in centers) / len(centers)
    return lng, lat


class SatService:
    """Seat availability per SAT date, fetched through the proxy project."""

    def __init__(
        self,
        client,
        invoke: Callable = invoke_function,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self._invoke = invoke
        self._rng = rng

    async def fetch_seats(self, test_date: date, location: str = "All") -> SatSeats:
        """
        Fetch and normalise the test centers of one SAT date.

        Raises:
            EdgeFunctionError: If the function fails or reports success=false
        """
        data = await self._invoke(self.client, SEATS_FUNCTION, {"date": test_date.isoformat()})
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise EdgeFunctionError(error or "API returned unsuccessful response", SEATS_FUNCTION)

        centers = transform_centers(data.get("data"), self._rng)
        cached = bool(data.get("cached"))
        logger.info(f"Loaded {len(centers)} test centers for {test_date} (cached: {cached})")

        visible = filter_by_location(centers, location)
        open_count = sum(1 for c in visible if c.status == "available")
        return SatSeats(
            test_date=test_date,
            centers=visible,
            cached=cached,
            open_count=open_count,
            full_count=len(visible) - open_count,
            locations=unique_locations(centers),
            map_center=center_of_markers(visible) if location != "All" else VIETNAM_CENTER,
        )
