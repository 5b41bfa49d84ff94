"""Smoke check: fetch a detail page the way a link-preview bot or crawler would."""
import sys

import requests

BASE_URL = "https://jveloce-cf602.web.app"
DETAIL_PATH = "/Coches/detalle.html"

USER_AGENTS = {
    "whatsapp": "WhatsApp/2.21.12.21 A",
    "googlebot": "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "browser": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36",
}


def check_detail(listing_id, agent="whatsapp", base_url=BASE_URL):
    try:
        response = requests.get(
            f"{base_url}{DETAIL_PATH}",
            params={"id": listing_id},
            headers={"User-Agent": USER_AGENTS[agent]},
            timeout=10,
        )
    except requests.RequestException as e:
        print(f"[{agent}] {listing_id} - Error: {e}")
        return
    print(f"[{agent}] {listing_id} - Status: {response.status_code}")
    print(f"Cache-Control: {response.headers.get('Cache-Control')}")
    print(response.text[:1000])


if __name__ == "__main__":
    car_id = sys.argv[1] if len(sys.argv) > 1 else "volkswagen-passat-variant-2015"
    base = sys.argv[2] if len(sys.argv) > 2 else BASE_URL
    for name in USER_AGENTS:
        check_detail(car_id, name, base)
        print()
