#!/usr/bin/env python3
"""
Traffic generator for the Habu store API.
Simulates shoppers browsing flowers, filling carts, checking out and
occasionally cancelling, so the dashboards and traces have data to show.
"""

import random
import threading
import time
import uuid
from datetime import datetime

import requests

API_URL = "http://localhost:8000/api"
PASSWORD = "Shopper123"

ACTION_WEIGHTS = {
    "browse": 0.4,
    "search": 0.1,
    "add_to_cart": 0.3,
    "checkout": 0.1,
    "view_orders": 0.05,
    "cancel": 0.05,
}

SEARCH_TERMS = ["rose", "tulip", "lily", "orchid", "plant", "bouquet"]
ADDRESSES = [
    "Bole Road, House 12, Addis Ababa",
    "Piazza, Churchill Avenue 4, Addis Ababa",
    "Kazanchis, Building 7, Addis Ababa",
]


def log(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {message}")


class Shopper:
    def __init__(self, shopper_id):
        self.shopper_id = shopper_id
        self.token = None
        self.products = []
        self.order_ids = []

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def register(self):
        """Create a fresh client account and keep its access token."""
        email = f"shopper-{uuid.uuid4().hex[:10]}@habu-traffic.com"
        try:
            response = requests.post(
                f"{API_URL}/auth/register",
                json={"email": email, "password": PASSWORD, "first_name": "Traffic", "last_name": "Shopper"},
                timeout=5
            )
            if response.status_code == 201:
                self.token = response.json()["data"]["accessToken"]
                log(f"Shopper {self.shopper_id}: Registered as {email}")
                return True
            log(f"Shopper {self.shopper_id}: Registration failed - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Registration error - {e}")
        return False

    def fetch_products(self):
        try:
            response = requests.get(f"{API_URL}/client/products", params={"limit": 50}, timeout=5)
            if response.status_code == 200:
                self.products = response.json()["data"]
                log(f"Shopper {self.shopper_id}: Fetched {len(self.products)} products")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Failed to fetch products - {e}")
        return False

    def browse_products(self):
        if not self.products:
            self.fetch_products()
        if not self.products:
            return False

        product = random.choice(self.products)
        try:
            response = requests.get(f"{API_URL}/client/products/{product['id']}", timeout=5)
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id}: Browsing {product['name']}")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Failed to browse product - {e}")
        return False

    def search(self):
        term = random.choice(SEARCH_TERMS)
        try:
            response = requests.get(f"{API_URL}/client/products/search", params={"q": term}, timeout=5)
            if response.status_code == 200:
                total = response.json()["pagination"]["total"]
                log(f"Shopper {self.shopper_id}: Searched '{term}' ({total} results)")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Search failed - {e}")
        return False

    def add_to_cart(self):
        if not self.products:
            self.fetch_products()
        in_stock = [p for p in self.products if p["stock_quantity"] > 0]
        if not in_stock:
            return False

        product = random.choice(in_stock)
        try:
            response = requests.post(
                f"{API_URL}/cart",
                json={"product_id": product["id"], "quantity": random.randint(1, 3)},
                headers=self.headers,
                timeout=5
            )
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id}: Added {product['name']} to cart")
                return True
            log(f"Shopper {self.shopper_id}: Failed to add to cart - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Failed to add to cart - {e}")
        return False

    def view_cart(self):
        try:
            response = requests.get(f"{API_URL}/cart/summary", headers=self.headers, timeout=5)
            if response.status_code == 200:
                summary = response.json()["data"]
                log(f"Shopper {self.shopper_id}: Cart has {summary['totalItems']} items ({summary['totalPrice']} ETB)")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Failed to view cart - {e}")
        return False

    def checkout(self):
        """Order whatever is in the cart."""
        try:
            response = requests.post(
                f"{API_URL}/client/orders",
                json={
                    "shipping_address": random.choice(ADDRESSES),
                    "payment_method": random.choice(["cash_on_delivery", "credit_card", "debit_card"]),
                },
                headers=self.headers,
                timeout=10
            )
            if response.status_code == 201:
                order = response.json()["data"]
                self.order_ids.append(order["id"])
                log(f"Shopper {self.shopper_id}: Checkout successful - Order {order['order_number']}")
                return True
            log(f"Shopper {self.shopper_id}: Checkout failed - {response.status_code} {response.json().get('message')}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Checkout failed - {e}")
        return False

    def view_orders(self):
        try:
            response = requests.get(f"{API_URL}/client/orders", headers=self.headers, timeout=5)
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id}: Viewing {response.json()['pagination']['total']} orders")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Failed to view orders - {e}")
        return False

    def cancel_order(self):
        if not self.order_ids:
            return False
        order_id = self.order_ids.pop()
        try:
            response = requests.patch(f"{API_URL}/client/orders/{order_id}/cancel", headers=self.headers, timeout=5)
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id}: Cancelled order {order_id}")
                return True
            log(f"Shopper {self.shopper_id}: Cancel failed - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id}: Cancel failed - {e}")
        return False

    def random_action(self):
        action = random.choices(
            list(ACTION_WEIGHTS.keys()),
            weights=list(ACTION_WEIGHTS.values())
        )[0]

        if action == "browse":
            return self.browse_products()
        elif action == "search":
            return self.search()
        elif action == "add_to_cart":
            return self.add_to_cart()
        elif action == "checkout":
            return self.checkout()
        elif action == "view_orders":
            return self.view_orders()
        elif action == "cancel":
            return self.cancel_order()


def shopper_session(shopper_id, duration_seconds, shopper_type="browser"):
    """
    Simulate one shopper.

    shopper_type:
    - "browser": Anonymous, only browses and searches (50%)
    - "cart_abandoner": Registers and fills a cart but never orders (30%)
    - "buyer": Registers and completes purchases (20%)
    """
    shopper = Shopper(shopper_id)
    end_time = time.time() + duration_seconds

    shopper.fetch_products()
    for _ in range(random.randint(2, 5)):
        shopper.browse_products()
        time.sleep(random.uniform(0.5, 1.5))

    if shopper_type == "browser":
        while time.time() < end_time:
            if random.random() < 0.2:
                shopper.search()
            else:
                shopper.browse_products()
            time.sleep(random.uniform(0.3, 0.8))
        return

    if not shopper.register():
        return

    for _ in range(random.randint(1, 3)):
        shopper.add_to_cart()
        time.sleep(random.uniform(0.3, 0.8))

    if shopper_type == "cart_abandoner":
        while time.time() < end_time:
            if random.random() < 0.5:
                shopper.browse_products()
            else:
                shopper.view_cart()
            time.sleep(random.uniform(0.3, 0.8))
        return

    shopper.checkout()
    while time.time() < end_time:
        shopper.random_action()
        time.sleep(random.uniform(0.5, 1.5))


def generate_traffic(num_concurrent_shoppers=5, session_duration=60):
    """Keep num_concurrent_shoppers sessions running until interrupted."""
    log(f"Starting traffic generation with {num_concurrent_shoppers} concurrent shoppers")
    log(f"Session duration: {session_duration} seconds")
    log("Shopper mix: 50% browsers, 30% cart abandoners, 20% buyers")

    threads = []
    try:
        while True:
            while len([t for t in threads if t.is_alive()]) < num_concurrent_shoppers:
                shopper_id = f"shopper_{random.randint(1000, 9999)}"
                rand = random.random()
                if rand < 0.50:
                    shopper_type = "browser"
                elif rand < 0.80:
                    shopper_type = "cart_abandoner"
                else:
                    shopper_type = "buyer"

                thread = threading.Thread(
                    target=shopper_session,
                    args=(shopper_id, session_duration, shopper_type),
                    daemon=True
                )
                thread.start()
                threads.append(thread)
                time.sleep(random.uniform(1, 3))

            threads = [t for t in threads if t.is_alive()]
            time.sleep(5)

    except KeyboardInterrupt:
        log("Stopping traffic generation...")
        for thread in threads:
            thread.join(timeout=10)
        log("Traffic generation stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate traffic for the Habu store API")
    parser.add_argument("--users", type=int, default=5, help="Number of concurrent shoppers (default: 5)")
    parser.add_argument("--duration", type=int, default=60, help="Session duration in seconds (default: 60)")
    parser.add_argument(
        "--url",
        type=str,
        default=API_URL,
        help=f"API base URL including /api (default: {API_URL})"
    )

    args = parser.parse_args()
    API_URL = args.url.rstrip("/")

    log("=" * 60)
    log("Habu Traffic Generator")
    log("=" * 60)
    log(f"API URL: {API_URL}")
    log(f"Concurrent Shoppers: {args.users}")
    log(f"Session Duration: {args.duration}s")
    log("=" * 60)

    generate_traffic(args.users, args.duration)
