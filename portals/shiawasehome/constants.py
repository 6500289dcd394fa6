"""shiawasehome-reuse.com portal-specific constants."""

from typing import Dict, List

BASE_URL = "https://www.shiawasehome-reuse.com"

DEFAULT_SEARCH_URL = (
    "https://www.shiawasehome-reuse.com/"
    "?bukken=jsearch&shub=1&kalb=0&kahb=kp120&tochimel=0&tochimeh=&mel=0&meh="
)

# Detail page selectors
DETAIL_SELECTORS: Dict[str, str] = {
    "address": ".top_shozaichi",
    "price": ".top_price",
    "floor_plan": ".top_madori",
    "land_area": ".top_menseki",
    "build_area": ".top_tatemono",
    "tags": "div.pickup_box.list > ul > div > ul",
    "listing_url": "a.top-linkimg",
    "sold": "div.detail_sold",
    "images": ".slick-track li > a > img",
    "recommended_text": "div.detail-comment",
    "about_property": "div.section.detail-section.bukken-outline",
    "spec_rows": "table.spec_table tr, .bukken-outline table tr",
}

IMAGE_FALLBACK_SELECTORS: List[str] = [
    ".asset_body img",
    ".gallery img",
    ".property-gallery img",
    ".syousai_img img",
    ".img_wide img",
    ".boxer_sample img",
    'img[src*="uploads"]',
]

DESCRIPTION_FALLBACK_SELECTORS: List[str] = [
    'meta[name="description"]',
    ".entry-content",
    "article",
    "table.spec_table",
]

# Search results selectors
SEARCH_SELECTORS: Dict[str, str] = {
    "item": "#bukken_list > li.cf",
    "link": "a",
    "title": "dt.entry-title",
    "badge": ".new_mark",
    "thumbnail": ".list_img img",
    "detail_rows": "dd.list_detail > ul > li > dl",
    "tags": ".pickup_box.list .facility > li",
    "recommendation": ".detail_txt.recommend_txt dd p",
    "next_page": "a.nextpostslink, .pagination a.next, a[rel=next]",
}

# dt label -> summary field
SEARCH_LABELS: Dict[str, str] = {
    "総額": "price",
    "価格": "price",
    "間取り": "floor_plan",
    "住居表示": "address",
    "所在地": "address",
    "最寄り駅": "nearest_station",
    "新築年月": "built_date",
    "建物面積": "build_area",
    "土地面積": "land_area",
    "取引態様": "transaction_type",
}

# Removed listing detection
REMOVAL_TEXT_MARKERS: List[str] = [
    "listing is no longer available",
    "物件は売却済みです",
]
REMOVAL_PATTERNS: List[str] = [
    r"property (?:has been|was) (?:sold|removed)",
]
# A detail page must contain at least one of these
REQUIRED_MARKERS: List[str] = ["detail_price", "property-details"]

# Elements to wait for after navigation
DETAIL_WAIT_FOR = ".top_price, .detail_price"
SEARCH_WAIT_FOR = "#bukken_list"
