import logging
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx

from services.errors import WardrobeAssetError
from services.models import WardrobeItem

logger = logging.getLogger(__name__)

# Default wardrobe items, hosted with the frontend under /wardrobe-assets/.
DEFAULT_WARDROBE: Tuple[WardrobeItem, ...] = (
    # --- Tops ---
    WardrobeItem(id="graphic-tee-1", name="Abstract graphic tee", url="/wardrobe-assets/abstract-graphic-tee.png", category="top"),
    WardrobeItem(id="silk-blouse-1", name="Cream silk blouse", url="/wardrobe-assets/cream-silk-blouse.png", category="top"),
    WardrobeItem(id="striped-shirt-1", name="Blue striped shirt", url="/wardrobe-assets/blue-striped-shirt.png", category="top"),
    WardrobeItem(id="cashmere-sweater-1", name="Grey cashmere sweater", url="/wardrobe-assets/grey-cashmere-sweater.png", category="top"),
    WardrobeItem(id="linen-shirt-1", name="White linen shirt", url="/wardrobe-assets/white-linen-shirt.png", category="top"),
    WardrobeItem(id="turtleneck-1", name="Black turtleneck sweater", url="/wardrobe-assets/black-turtleneck.png", category="top"),
    # --- Bottoms ---
    WardrobeItem(id="blue-jeans-1", name="Classic blue jeans", url="/wardrobe-assets/classic-blue-jeans.png", category="bottom"),
    WardrobeItem(id="pleated-skirt-1", name="Taupe pleated skirt", url="/wardrobe-assets/taupe-pleated-skirt.png", category="bottom"),
    WardrobeItem(id="black-trousers-1", name="Black dress trousers", url="/wardrobe-assets/black-trousers.png", category="bottom"),
    WardrobeItem(id="khaki-chinos-1", name="Khaki chinos", url="/wardrobe-assets/khaki-chinos.png", category="bottom"),
    WardrobeItem(id="denim-shorts-1", name="Denim shorts", url="/wardrobe-assets/denim-shorts.png", category="bottom"),
    WardrobeItem(id="white-jeans-1", name="White jeans", url="/wardrobe-assets/white-jeans.png", category="bottom"),
    # --- Outerwear ---
    WardrobeItem(id="leather-jacket-1", name="Leather jacket", url="/wardrobe-assets/leather-jacket.png", category="outerwear"),
    WardrobeItem(id="trench-coat-1", name="Beige trench coat", url="/wardrobe-assets/beige-trench-coat.png", category="outerwear"),
    WardrobeItem(id="denim-jacket-1", name="Blue denim jacket", url="/wardrobe-assets/blue-denim-jacket.png", category="outerwear"),
    WardrobeItem(id="blazer-1", name="Navy blazer", url="/wardrobe-assets/navy-blazer.png", category="outerwear"),
    WardrobeItem(id="puffer-vest-1", name="Black puffer vest", url="/wardrobe-assets/black-puffer-vest.png", category="outerwear"),
    # --- Dresses ---
    WardrobeItem(id="floral-dress-1", name="Summer floral dress", url="/wardrobe-assets/summer-floral-dress.png", category="dress"),
    WardrobeItem(id="little-black-dress-1", name="Little black dress", url="/wardrobe-assets/little-black-dress.png", category="dress"),
    WardrobeItem(id="maxi-dress-1", name="Boho maxi dress", url="/wardrobe-assets/boho-maxi-dress.png", category="dress"),
    WardrobeItem(id="shirt-dress-1", name="Striped shirt dress", url="/wardrobe-assets/striped-shirt-dress.png", category="dress"),
    # --- Shoes ---
    WardrobeItem(id="white-sneakers-1", name="White sneakers", url="/wardrobe-assets/white-sneakers.png", category="shoes"),
    WardrobeItem(id="black-boots-1", name="Black combat boots", url="/wardrobe-assets/black-combat-boots.png", category="shoes"),
    WardrobeItem(id="brown-loafers-1", name="Brown leather loafers", url="/wardrobe-assets/brown-leather-loafers.png", category="shoes"),
    WardrobeItem(id="strappy-sandals-1", name="Strappy sandals", url="/wardrobe-assets/strappy-sandals.png", category="shoes"),
    WardrobeItem(id="nude-heels-1", name="Nude heels", url="/wardrobe-assets/nude-heels.png", category="shoes"),
    # --- Accessories ---
    WardrobeItem(id="leather-tote-1", name="Leather tote bag", url="/wardrobe-assets/leather-tote-bag.png", category="accessory"),
    WardrobeItem(id="aviator-sunglasses-1", name="Aviator sunglasses", url="/wardrobe-assets/aviator-sunglasses.png", category="accessory"),
    WardrobeItem(id="silk-scarf-1", name="Patterned silk scarf", url="/wardrobe-assets/patterned-silk-scarf.png", category="accessory"),
    WardrobeItem(id="fedora-hat-1", name="Wool fedora hat", url="/wardrobe-assets/wool-fedora-hat.png", category="accessory"),
)

_BY_ID: Dict[str, WardrobeItem] = {item.id: item for item in DEFAULT_WARDROBE}


def get_item(item_id: str) -> Optional[WardrobeItem]:
    return _BY_ID.get(item_id)


def select_items(item_ids: Optional[List[str]]) -> List[WardrobeItem]:
    """Catalog subset for the given ids (whole catalog when ids is None). Unknown ids are skipped."""
    if item_ids is None:
        return list(DEFAULT_WARDROBE)
    selected = []
    for item_id in item_ids:
        item = _BY_ID.get(item_id)
        if item is None:
            logger.warning(f"Unknown wardrobe item id: {item_id}")
            continue
        selected.append(item)
    return selected


async def load_item_image(item: WardrobeItem, assets_dir: Path, *, timeout: float = 30.0) -> Tuple[bytes, str]:
    """
    Load a wardrobe item's image bytes and MIME type.

    Local assets ("/wardrobe-assets/...") resolve under `assets_dir`;
    absolute URLs are fetched with httpx.
    """
    url = item.url
    if url.startswith("/"):
        path = (assets_dir / url.lstrip("/")).resolve()
        if assets_dir.resolve() not in path.parents:
            raise WardrobeAssetError(f"Refusing to read wardrobe asset outside the assets directory: '{url}'")
        if not path.is_file():
            raise WardrobeAssetError(
                f"Could not find the file at local path '{url}'. "
                f"Make sure the image exists in '{assets_dir / url.lstrip('/')}'."
            )
        mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
        return path.read_bytes(), mime_type

    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"[Fetch Error] Failed to load wardrobe item from URL: {url}. {e}")
        raise WardrobeAssetError(f"Could not load the image from external URL '{url}': {e}") from e

    if not response.is_success:
        raise WardrobeAssetError(
            f"Failed to fetch image: {response.status_code} {response.reason_phrase} from {url}"
        )
    mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
    return response.content, mime_type
