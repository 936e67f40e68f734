"""Team roster, credits and pricing endpoints."""


def test_get_team_requires_one(api_client, store):
    store.login("x@y.com")
    assert api_client.get("/v1/team").status_code == 404


def test_member_lifecycle(api_client, make_team):
    make_team()
    resp = api_client.post("/v1/team/members", json={"email": "b@example.com", "credit_limit": 300})
    assert resp.json()["data"]["teamsPlan"]["members"][-1]["status"] == "pending"

    api_client.post("/v1/team/members/b@example.com/activate")
    team = api_client.get("/v1/team").json()
    assert team["data"]["members"][-1]["status"] == "active"
    assert team["availableSeats"] == 3

    api_client.post("/v1/team/transfer-ownership", json={"email": "b@example.com"})
    roles = {m["email"]: m["role"] for m in api_client.get("/v1/team").json()["data"]["members"]}
    assert roles == {"owner@example.com": "member", "b@example.com": "owner"}

    resp = api_client.delete("/v1/team/members/b@example.com")
    members = resp.json()["data"]["teamsPlan"]["members"]
    assert [(m["email"], m["role"]) for m in members] == [("owner@example.com", "owner")]


def test_duplicate_member_conflict(api_client, make_team):
    make_team(members=["b@example.com"])
    resp = api_client.post("/v1/team/members", json={"email": "b@example.com"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "already_exists"


def test_remove_unknown_member_404(api_client, make_team):
    make_team()
    assert api_client.delete("/v1/team/members/ghost@example.com").status_code == 404


def test_billing_admin_endpoints(api_client, make_team):
    make_team(members=["b@example.com"])
    api_client.post("/v1/team/billing-admins", json={"email": "admin@example.com"})
    admin = api_client.post("/v1/team/billing-admins/admin@example.com/accept").json()["data"]["teamsPlan"]["billingAdmins"][0]
    assert admin["status"] == "active"
    assert admin["acceptedAt"]

    team = api_client.post("/v1/team/members/b@example.com/billing-admin").json()["data"]["teamsPlan"]
    assert {a["email"] for a in team["billingAdmins"]} == {"admin@example.com", "b@example.com"}

    team = api_client.post("/v1/team/billing-admins/b@example.com/member", json={"credit_limit": 100}).json()["data"]["teamsPlan"]
    assert team["members"][-1]["email"] == "b@example.com"

    api_client.post("/v1/team/billing-admins/admin@example.com/activate")
    team = api_client.delete("/v1/team/billing-admins/admin@example.com").json()["data"]["teamsPlan"]
    assert team["billingAdmins"] == []


def test_make_owner_endpoint(api_client, make_team):
    make_team(members=["b@example.com"])
    members = api_client.post("/v1/team/members/b@example.com/owner").json()["data"]["teamsPlan"]["members"]
    assert [m["role"] for m in members] == ["member", "owner"]


def test_buy_credit_bundles(api_client, store):
    store.login("x@y.com")
    resp = api_client.post("/v1/credits/buy", json={"bundles": {"500": 1, "1000": 2}})
    account = resp.json()["data"]
    assert account["credits"] == 150 + 2500
    assert account["invoices"][-1]["amount"] == 15 + 50


def test_empty_basket_rejected(api_client, store):
    store.login("x@y.com")
    resp = api_client.post("/v1/credits/buy", json={"bundles": {}})
    assert resp.status_code == 400


def test_extra_credits_for_free_plan_conflict(api_client, store):
    store.login("x@y.com")
    resp = api_client.post("/v1/credits/extra", json={"bundles": {"1000": 1}})
    assert resp.status_code == 409


def test_extra_credits_for_team(api_client, make_team):
    make_team()
    account = api_client.post("/v1/credits/extra", json={"bundles": {"5000": 1}}).json()["data"]
    assert account["teamsPlan"]["extraCredits"] == 5000


def test_burn_and_summary(api_client, store):
    store.login("x@y.com")
    body = api_client.post("/v1/credits/burn", json={"amount": 500}).json()
    assert body["clamped"] is True
    assert body["data"] == {"pool": "individual", "total": 150, "used": 150, "available": 0, "extra": 0}
    assert api_client.get("/v1/credits/summary").json()["data"]["available"] == 0


def test_burn_within_balance_not_clamped(api_client, store):
    store.login("x@y.com")
    body = api_client.post("/v1/credits/burn", json={"amount": 50}).json()
    assert body["clamped"] is False
    assert body["data"]["available"] == 100


def test_transactions_listing(api_client, store, clock):
    store.login("x@y.com")
    clock.advance(hours=1)
    store.buy_credits(500, 15)
    body = api_client.get("/v1/credits/transactions").json()
    assert body["count"] == 2
    assert body["data"][0]["type"] == "purchased"


def test_summary_requires_login(api_client):
    assert api_client.get("/v1/credits/summary").status_code == 401


def test_pricing_catalogue(api_client):
    data = api_client.get("/v1/pricing").json()["data"]
    assert data["seat_price"] == 10
    assert data["pro_tiers"][0]["annual_monthly_equivalent"] == 16


def test_teams_quote(api_client):
    data = api_client.get("/v1/pricing/teams-quote", params={"credits": 5000, "seats": 6}).json()["data"]
    assert data["monthly_cost"] == 160
    assert data["avg_credits_per_seat"] == 833
    assert data["below_recommended"] is True
