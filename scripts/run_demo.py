#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo against a running canteen service
- Signs up / logs in a student
- Staff tops up the wallet from the dashboard
- Student reads the menu and places a wallet order
- Student starts a card payment; a simulated gateway callback confirms it
- Staff marks one order ready and rejects the other (wallet refund)
- Prints the day's analytics
"""

import argparse
import json
import os
from typing import Any, Dict, List, Optional

import httpx


class DemoRunner:
    def __init__(self, base_url: str, dashboard_password: str):
        self.base_url = base_url.rstrip("/")
        self.dashboard_headers = {"Authorization": f"Bearer {dashboard_password}"}

        self.student_id = "20240001"
        self.password = "P@ssw0rd!"
        self.name = "Demo Student"

        self.access_token: Optional[str] = None

    # ---------- helpers ----------
    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def mask_token(self, token: str) -> str:
        if not token:
            return "<none>"
        return token if len(token) <= 12 else f"{token[:8]}...{token[-6:]}"

    @property
    def student_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        params: Optional[Dict] = None,
        expected_status: List[int] = [200, 201],
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        print(f"\n-> {method} {url}")
        if data is not None:
            print(f"   Body: {json.dumps(data, indent=2)}")
        try:
            resp = httpx.request(method, url, headers=headers, json=data, params=params, timeout=30)
        except httpx.RequestError as e:
            print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None}

        status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
        print(f"   Status: {status_color}{resp.status_code}\033[0m")
        try:
            js = resp.json()
            print(json.dumps(js, indent=2, ensure_ascii=False))
        except ValueError:
            js = None
        return {"status": resp.status_code, "data": js}

    # ---------- flow ----------
    def run_demo(self):
        print("Starting canteen demo")

        self.show_step("Preflight: health")
        self.call_api("GET", "/health")

        self.show_step("Student: signup")
        self.call_api("POST", "/signup", data={
            "name": self.name, "studentId": self.student_id, "password": self.password,
        }, expected_status=[200, 400])

        self.show_step("Student: login")
        res = self.call_api("POST", "/login", data={"studentId": self.student_id, "password": self.password})
        if res.get("data"):
            self.access_token = res["data"]["session"]["access_token"]
            print(f"Access token: {self.mask_token(self.access_token)}")

        self.show_step("Dashboard: find student and charge wallet")
        found = self.call_api("POST", "/find-user", headers=self.dashboard_headers, data={"studentId": self.student_id})
        user_id = (found.get("data") or {}).get("user", {}).get("id")
        if user_id:
            self.call_api("POST", "/charge-wallet", headers=self.dashboard_headers, data={"userId": user_id, "amount": 200})

        self.show_step("Student: menu")
        menu = self.call_api("GET", "/menu").get("data") or {}
        first = next((items[0] for items in menu.values() if items), None)
        cart = [{"name": first["name"], "price": first["price"], "quantity": 2}] if first else \
            [{"name": "Tea", "price": 10, "quantity": 2}]

        self.show_step("Student: wallet order")
        wallet = self.call_api("POST", "/process-wallet-order", headers=self.student_headers,
                               data={"items": cart, "notes": "demo"})
        wallet_id = (wallet.get("data") or {}).get("displayId")

        self.show_step("Student: card payment")
        card = self.call_api("POST", "/start-paymob-payment", headers=self.student_headers,
                             data={"items": cart}, expected_status=[200, 500])
        card_id = (card.get("data") or {}).get("displayId")

        self.show_step("Gateway: simulated callback")
        if card_id:
            self.call_api("POST", "/confirm-paymob-callback", data={
                "type": "TRANSACTION",
                "obj": {"success": True, "order": {"merchant_order_id": str(card_id)}},
            })
        else:
            print("Skipping callback - card payment did not start (check PAYMOB_* settings)")

        self.show_step("Dashboard: active orders")
        self.call_api("GET", "/all-orders", headers=self.dashboard_headers)

        self.show_step("Dashboard: ready / reject")
        if card_id:
            self.call_api("POST", "/update-order-status", headers=self.dashboard_headers,
                          data={"displayId": card_id, "status": "Ready"})
        if wallet_id:
            self.call_api("POST", "/reject-order", headers=self.dashboard_headers,
                          data={"displayId": wallet_id, "reason": "Demo rejection"})

        self.show_step("Student: balance and orders")
        self.call_api("GET", "/user-details", headers=self.student_headers)
        self.call_api("GET", "/orders", headers=self.student_headers)

        self.show_step("Dashboard: analytics")
        self.call_api("GET", "/analytics", headers=self.dashboard_headers, params={"period": "today"})

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--base-url", default=os.getenv("CANTEEN_BASE_URL", "http://localhost:8000"))
    ap.add_argument("--dashboard-password", default=os.getenv("DASHBOARD_PASSWORD", ""))
    args = ap.parse_args()
    DemoRunner(args.base_url, args.dashboard_password).run_demo()
