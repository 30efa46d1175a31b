"""Tests for the portfolio API."""

import pytest
from sqlalchemy import func, select

from cryptofolio.models import Transaction


class TestListPortfolios:
    @pytest.mark.asyncio
    async def test_empty(self, test_client, auth_headers):
        response = await test_client.get("/api/portfolios", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["data"] == []
        assert body["pagination"] == {"limit": 50, "offset": 0, "total": 0, "has_next": False}

    @pytest.mark.asyncio
    async def test_pagination_newest_first(self, test_client, auth_headers):
        for name in ["A", "B", "C"]:
            response = await test_client.post("/api/portfolios", json={"name": name}, headers=auth_headers)
            assert response.status_code == 201

        first = await test_client.get("/api/portfolios?limit=2", headers=auth_headers)
        body = first.json()
        assert [p["name"] for p in body["data"]] == ["C", "B"]
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["has_next"] is True

        second = await test_client.get("/api/portfolios?limit=2&offset=2", headers=auth_headers)
        body = second.json()
        assert [p["name"] for p in body["data"]] == ["A"]
        assert body["pagination"]["has_next"] is False

    @pytest.mark.asyncio
    async def test_only_own_portfolios(self, test_client, sample_portfolio, other_headers):
        response = await test_client.get("/api/portfolios", headers=other_headers)
        assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_limit_out_of_range(self, test_client, auth_headers):
        response = await test_client.get("/api/portfolios?limit=101", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_requires_auth(self, test_client):
        response = await test_client.get("/api/portfolios")
        assert response.status_code == 401


class TestCreatePortfolio:
    @pytest.mark.asyncio
    async def test_create(self, test_client, auth_headers, sample_user):
        user, _ = sample_user
        response = await test_client.post(
            "/api/portfolios",
            json={"name": "  Long term  ", "description": "HODL"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["name"] == "Long term"
        assert data["description"] == "HODL"
        assert data["base_currency"] == "USD"
        assert data["user_id"] == user.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "   "}, {"name": "x" * 101}])
    async def test_invalid_name(self, test_client, auth_headers, payload):
        response = await test_client.post("/api/portfolios", json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_NAME"


class TestPortfolioDetail:
    @pytest.mark.asyncio
    async def test_empty_portfolio(self, test_client, auth_headers, sample_portfolio, price_source):
        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["portfolio"]["name"] == "Main"
        assert data["holdings"] == []
        assert data["summary"] == {
            "total_value": "0",
            "total_cost": "0",
            "unrealized_pl": "0",
            "total_pl_pct": "0.00",
            "holdings_count": 0,
            "prices_stale": False,
        }
        assert price_source.current_calls == []

    @pytest.mark.asyncio
    async def test_holdings_valued_at_current_price(
        self, test_client, auth_headers, sample_portfolio, add_transaction
    ):
        await add_transaction(sample_portfolio, "BTC", "BUY", "1", "40000")
        await add_transaction(sample_portfolio, "BTC", "BUY", "1", "50000")
        await add_transaction(sample_portfolio, "ETH", "BUY", "2", "2500")

        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)
        data = response.json()["data"]

        btc, eth = data["holdings"]
        assert btc["symbol"] == "BTC"
        assert btc["total_quantity"] == "2"
        assert btc["average_cost"] == "45000"
        assert btc["total_cost"] == "90000"
        assert btc["current_price"] == "50000"
        assert btc["market_value"] == "100000"
        assert btc["unrealized_pl"] == "10000"
        assert btc["unrealized_pl_pct"] == "11.11"
        assert btc["price_change_24h_pct"] == "1.50"

        assert eth["market_value"] == "6000"
        assert eth["unrealized_pl_pct"] == "20.00"

        summary = data["summary"]
        assert summary["total_value"] == "106000"
        assert summary["total_cost"] == "95000"
        assert summary["unrealized_pl"] == "11000"
        assert summary["total_pl_pct"] == "11.58"
        assert summary["holdings_count"] == 2
        assert summary["prices_stale"] is False

    @pytest.mark.asyncio
    async def test_closed_positions_are_hidden(
        self, test_client, auth_headers, sample_portfolio, add_transaction
    ):
        await add_transaction(sample_portfolio, "SOL", "BUY", "10", "80")
        await add_transaction(sample_portfolio, "SOL", "SELL", "10", "120")

        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)
        assert response.json()["data"]["holdings"] == []

    @pytest.mark.asyncio
    async def test_upstream_down_without_cache_flags_stale(
        self, test_client, auth_headers, sample_portfolio, add_transaction, price_source
    ):
        await add_transaction(sample_portfolio, "BTC", "BUY", "1", "40000")
        price_source.fail = True

        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["holdings"][0]["current_price"] == "0"
        assert data["holdings"][0]["unrealized_pl"] == "-40000"
        assert data["summary"]["prices_stale"] is True

    @pytest.mark.asyncio
    async def test_foreign_portfolio_is_not_found(self, test_client, sample_portfolio, other_headers):
        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=other_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PORTFOLIO_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_missing_portfolio(self, test_client, auth_headers):
        response = await test_client.get("/api/portfolios/does-not-exist", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PORTFOLIO_NOT_FOUND"


class TestUpdatePortfolio:
    @pytest.mark.asyncio
    async def test_rename(self, test_client, auth_headers, sample_portfolio):
        response = await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}",
            json={"name": "Renamed"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_clear_description(self, test_client, auth_headers, sample_portfolio):
        await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}", json={"description": "x"}, headers=auth_headers
        )
        response = await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}", json={"description": None}, headers=auth_headers
        )
        data = response.json()["data"]
        assert data["description"] is None
        assert data["name"] == "Main"

    @pytest.mark.asyncio
    async def test_empty_update(self, test_client, auth_headers, sample_portfolio):
        response = await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}", json={}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_FIELDS"

    @pytest.mark.asyncio
    async def test_blank_name(self, test_client, auth_headers, sample_portfolio):
        response = await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}", json={"name": " "}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_NAME"

    @pytest.mark.asyncio
    async def test_foreign_portfolio(self, test_client, sample_portfolio, other_headers):
        response = await test_client.patch(
            f"/api/portfolios/{sample_portfolio.id}", json={"name": "Mine now"}, headers=other_headers
        )
        assert response.status_code == 404


class TestDeletePortfolio:
    @pytest.mark.asyncio
    async def test_delete_removes_transactions(
        self, test_client, auth_headers, sample_portfolio, add_transaction, test_session, chart_cache
    ):
        await add_transaction(sample_portfolio, "BTC", "BUY", "1", "40000")
        chart_cache.set_chart_data(sample_portfolio.id, "7d", {"interval": "7d"})

        response = await test_client.delete(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)
        assert response.status_code == 204

        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)
        assert response.status_code == 404

        remaining = await test_session.scalar(
            select(func.count()).select_from(Transaction).where(
                Transaction.portfolio_id == sample_portfolio.id
            )
        )
        assert remaining == 0
        assert chart_cache.get_chart_data(sample_portfolio.id, "7d") is None

    @pytest.mark.asyncio
    async def test_foreign_portfolio_untouched(self, test_client, auth_headers, sample_portfolio, other_headers):
        response = await test_client.delete(f"/api/portfolios/{sample_portfolio.id}", headers=other_headers)
        assert response.status_code == 404

        response = await test_client.get(f"/api/portfolios/{sample_portfolio.id}", headers=auth_headers)
        assert response.status_code == 200
