"""
HTML rendering for crawlers.

Two shapes are produced here:
- a small standalone document with Open Graph / Twitter tags, for
  link-preview bots that never run JavaScript;
- a block of meta tags (plus JSON-LD) spliced into the app shell, for
  search crawlers that index the real page.
"""
import json
import re
from html import escape
from typing import Optional
from urllib.parse import quote, urlencode

from app.config import Settings
from app.schemas.listing import Listing

PREVIEW_WIDTH = 1200
PREVIEW_HEIGHT = 630

_CURRENCY = "€"


def format_price(price) -> str:
    """
    '28500€' -> '28.500€', '1234567' -> '1.234.567', empty -> '0'.
    The currency sign is kept only if the input had one.
    """
    if not price:
        return "0"
    raw = str(price)
    had_currency = _CURRENCY in raw
    numeric = re.sub(r"[€\s]", "", raw)
    grouped = re.sub(r"\B(?=(\d{3})+(?!\d))", ".", numeric)
    return f"{grouped}{_CURRENCY}" if had_currency else grouped


def listing_title(listing: Listing) -> str:
    return f"{listing.brand} {listing.model} {listing.year or ''}".strip()


def build_description(listing: Listing, settings: Settings) -> str:
    price = format_price(listing.price)
    # "Consultar" and similar stay as written
    if re.fullmatch(r"[\d.]+", price):
        price += _CURRENCY
    parts = [price]
    if listing.fuel:
        parts.append(listing.fuel)
    if listing.km:
        parts.append(listing.km)
    return (
        " | ".join(parts)
        + f" - Descubre este increíble {listing_title(listing)} en {settings.site_name} {settings.site_city}."
    )


def preview_image(listing: Listing, settings: Settings) -> str:
    """Third exterior shot (the large one in the gallery), else the main image, else the brand logo."""
    exterior = listing.gallery_exterior or []
    if len(exterior) > 2 and exterior[2]:
        return exterior[2]
    return listing.image or settings.fallback_image_url


def optimized_image_url(source: str, settings: Settings,
                        width: int = PREVIEW_WIDTH, height: int = PREVIEW_HEIGHT) -> str:
    """URL of a resized rendition served by the image proxy."""
    if not source.startswith(("http://", "https://")):
        # Relative asset paths cannot be fetched by the proxy as they are
        source = f"{settings.site_url}/{source.lstrip('/')}"
    query = urlencode({"url": source, "w": width, "h": height, "fit": "cover", "output": "jpg"})
    return f"{settings.image_proxy_url}?{query}"


def canonical_url(listing_id: str, settings: Settings) -> str:
    return f"{settings.site_url}{settings.detail_path}?id={quote(listing_id, safe='')}"


def app_url(listing_id: Optional[str], settings: Settings) -> str:
    """Relative URL of the single-page app route for a listing."""
    if listing_id:
        return f"{settings.shell_path}?id={quote(listing_id, safe='')}"
    return settings.shell_path


def _digits(value: Optional[str]) -> Optional[str]:
    return re.sub(r"[^\d]", "", value) if value else None


def structured_data(listing: Listing, settings: Settings) -> dict:
    """schema.org Car description of a listing, with empty values dropped."""
    images = [img for img in [listing.image, *listing.gallery_exterior, *listing.gallery_interior] if img]
    data = {
        "@context": "https://schema.org/",
        "@type": "Car",
        "name": listing_title(listing),
        "brand": {"@type": "Brand", "name": listing.brand},
        "model": listing.model,
        "vehicleModelDate": str(listing.year) if listing.year else None,
        "mileageFromOdometer": {"@type": "QuantitativeValue", "value": _digits(listing.km), "unitCode": "KMT"},
        "fuelType": listing.fuel,
        "vehicleTransmission": "Automático" if listing.transmission == "Auto" else listing.transmission,
        "vehicleEngine": {
            "@type": "EngineSpecification",
            "enginePower": {"@type": "QuantitativeValue", "value": _digits(listing.cv), "unitCode": "BHP"},
        },
        "image": images or None,
        "description": listing.description or f"{listing_title(listing)} en excelente estado.",
        "offers": {
            "@type": "Offer",
            "price": re.sub(r"[€\s]", "", listing.price) if listing.price else None,
            "priceCurrency": "EUR",
            "availability": "https://schema.org/SoldOut" if listing.sold else "https://schema.org/InStock",
            "seller": {"@type": "AutoDealer", "name": settings.site_name, "url": settings.site_url},
        },
        "url": canonical_url(listing.id, settings),
    }
    return {key: value for key, value in data.items() if value is not None}


def build_meta_tags(listing: Listing, settings: Settings) -> str:
    """Head tags a search crawler should see for this listing."""
    title = escape(f"{listing_title(listing)} | {settings.site_name}")
    description = escape(build_description(listing, settings))
    url = escape(canonical_url(listing.id, settings))
    image = escape(optimized_image_url(preview_image(listing, settings), settings))
    # No raw "<" inside the JSON-LD script body
    ld_json = json.dumps(structured_data(listing, settings), ensure_ascii=False).replace("<", "\\u003c")
    return (
        f"<title>{title}</title>\n"
        f'    <link rel="canonical" href="{url}">\n'
        f'    <meta name="description" content="{description}">\n'
        f'    <meta property="og:title" content="{title}">\n'
        f'    <meta property="og:description" content="{description}">\n'
        f'    <meta property="og:image" content="{image}">\n'
        f'    <meta property="og:url" content="{url}">\n'
        f'    <script type="application/ld+json">{ld_json}</script>'
    )


def inject_meta_tags(shell: str, tags: str, marker: str) -> str:
    """
    Replace the region from `marker` up to the next closing script tag
    (inclusive) with `marker` followed by `tags`. If the marker or the
    closing tag is missing, the shell is returned unchanged.
    """
    start = shell.find(marker)
    if start == -1:
        return shell
    end = shell.find("</script>", start + len(marker))
    if end == -1:
        return shell
    end += len("</script>")
    return f"{shell[:start]}{marker}\n    {tags}{shell[end:]}"


def render_bot_page(listing: Listing, settings: Settings) -> str:
    """Self-contained preview document for link-unfurling bots."""
    name = escape(listing_title(listing))
    title = escape(f"{listing_title(listing)} | {settings.site_name}")
    description = escape(build_description(listing, settings))
    image = escape(optimized_image_url(preview_image(listing, settings), settings))
    url = escape(canonical_url(listing.id, settings))
    favicon = escape(settings.favicon_url)
    redirect = json.dumps(app_url(listing.id, settings))
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="UTF-8">
    <title>{name} | {escape(settings.site_name)} {escape(settings.site_city)}</title>
    <meta name="description" content="{description}">

    <!-- Open Graph (Facebook, WhatsApp) -->
    <meta property="og:title" content="{title}">
    <meta property="og:description" content="{description}">
    <meta property="og:image" content="{image}">
    <meta property="og:image:width" content="{PREVIEW_WIDTH}">
    <meta property="og:image:height" content="{PREVIEW_HEIGHT}">
    <meta property="og:url" content="{url}">
    <meta property="og:type" content="article">

    <!-- Twitter Card -->
    <meta name="twitter:card" content="summary_large_image">
    <meta name="twitter:title" content="{title}">
    <meta name="twitter:description" content="{description}">
    <meta name="twitter:image" content="{image}">

    <link rel="icon" href="{favicon}" sizes="48x48">
    <link rel="apple-touch-icon" href="{favicon}">
</head>
<body>
    <h1>{name}</h1>
    <p>{description}</p>
    <img src="{image}" alt="{name}">
    <script>
        window.location.replace({redirect});
    </script>
</body>
</html>"""


def render_redirect_page(listing_id: Optional[str], settings: Settings) -> str:
    """Minimal page that sends a browser to the app route; used when the shell is unavailable."""
    target = json.dumps(app_url(listing_id, settings))
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{escape(settings.site_name)}</title>"
        "</head><body>"
        f"<script>window.location.href={target};</script>"
        "</body></html>"
    )
