"""
Integration tests for the Lending API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from lending.api import create_app
from lending.api.dependencies import LendingSystem, get_lending_system
from lending.storage import InMemoryStorage


@pytest.fixture
def system():
    """Lending system on in-memory storage with the default periodicities"""
    return LendingSystem(storage=InMemoryStorage())


@pytest.fixture
def client(system):
    """Create a test client wired to the test lending system"""
    app = create_app()
    app.dependency_overrides[get_lending_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


def periodicity_id(client, name):
    periodicities = client.get("/periodicities").json()["periodicities"]
    return next(p["id"] for p in periodicities if p["name"] == name)


def create_loan(client, **overrides):
    payload = {
        "user_id": "operator-1",
        "customer_id": "customer-1",
        "customer_name": "Maria",
        "creditor_id": "creditor-1",
        "loan_type": "SAC",
        "amount": "1000",
        "installments": 5,
        "interest_rate": "10",
        "periodicity_id": periodicity_id(client, "Mensal"),
        "start_date": "2024-01-10",
        "commission": "3",
        "creditor_commission": "2"
    }
    payload.update(overrides)
    return client.post("/loans", json=payload)


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        """Test health endpoint"""
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        """Test root endpoint"""
        r = client.get("/")
        assert r.status_code == 200
        assert "endpoints" in r.json()


class TestPeriodicityEndpoints:
    """Periodicity registry and schedule preview"""

    def test_defaults_seeded(self, client):
        """Test the standard periodicities exist"""
        names = {p["name"] for p in client.get("/periodicities").json()["periodicities"]}
        assert {"Diário", "Semanal", "Quinzenal", "Mensal", "Anual"} <= names

    def test_create_get_update_delete(self, client):
        """Test the full registry lifecycle"""
        r = client.post("/periodicities", json={
            "name": "Dias úteis",
            "config": {"interval_type": "DAILY", "allowed_weekdays": [1, 2, 3, 4, 5]}
        })
        assert r.status_code == 201
        created = r.json()
        assert created["label"] == "Diário (Seg, Ter, Qua, Qui, Sex)"

        r = client.get(f"/periodicities/{created['id']}")
        assert r.status_code == 200
        assert r.json()["config"]["allowed_weekdays"] == [1, 2, 3, 4, 5]

        r = client.put(f"/periodicities/{created['id']}", json={"description": "Segunda a sexta"})
        assert r.status_code == 200
        assert r.json()["description"] == "Segunda a sexta"

        r = client.delete(f"/periodicities/{created['id']}")
        assert r.status_code == 200
        assert client.get(f"/periodicities/{created['id']}").status_code == 404

    def test_invalid_config(self, client):
        """Test invalid periodicities are rejected"""
        r = client.post("/periodicities", json={
            "name": "Vazia",
            "config": {"interval_type": "DAILY", "allowed_weekdays": []}
        })
        assert r.status_code == 400

        r = client.post("/periodicities", json={
            "name": "Horária",
            "config": {"interval_type": "HOURLY"}
        })
        assert r.status_code == 400

    def test_duplicate_name(self, client):
        """Test names are unique"""
        r = client.post("/periodicities", json={"name": "Mensal", "config": {"interval_type": "MONTHLY"}})
        assert r.status_code == 400

    def test_preview(self, client):
        """Test previewing a schedule with a start date warning"""
        r = client.post("/periodicities/preview", json={
            "config": {"interval_type": "DAILY", "allowed_weekdays": [1, 2, 3, 4, 5]},
            "start_date": "2024-01-06",
            "installments": 3
        })
        assert r.status_code == 200
        data = r.json()
        assert data["due_dates"] == ["2024-01-06", "2024-01-08", "2024-01-09"]
        assert data["formatted_due_dates"][0] == "06/01/2024"
        assert data["start_date_valid"] is False
        assert data["suggested_start_date"] == "2024-01-08"

    def test_delete_in_use(self, client):
        """Test deleting a periodicity used by a loan"""
        assert create_loan(client).status_code == 201
        r = client.delete(f"/periodicities/{periodicity_id(client, 'Mensal')}")
        assert r.status_code == 409


class TestSimulationEndpoints:
    """Loan simulation"""

    def test_simulate_with_dates(self, client):
        """Test a simulation attaches due dates"""
        r = client.post("/simulations", json={
            "loan_type": "SAC",
            "amount": "1000",
            "installments": 5,
            "interest_rate": "10",
            "periodicity_id": periodicity_id(client, "Mensal"),
            "start_date": "2024-01-31"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["total_amount"]["amount"] == "1300.00"
        assert data["schedule"][1]["due_date"] == "2024-02-29"
        assert data["schedule"][4]["remaining_balance"] == "0.00"

    def test_simulate_invalid(self, client):
        """Test invalid simulations"""
        r = client.post("/simulations", json={
            "loan_type": "BALLOON", "amount": "1000", "installments": 5, "interest_rate": "10"
        })
        assert r.status_code == 400

    def test_loan_types(self, client):
        """Test the loan type catalogue"""
        values = {t["value"] for t in client.get("/simulations/loan-types").json()["loan_types"]}
        assert values == {"PRICE", "SAC", "SIMPLE_INTEREST", "RECURRING_SIMPLE_INTEREST", "INTEREST_ONLY"}

    def test_recover_principal(self, client):
        """Test recovering the principal of a 1350 total at 35%"""
        r = client.post("/simulations/recover-principal", json={
            "total_amount": "1350", "loan_type": "SAC", "installments": 5, "interest_rate": "35"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["principal"] == "999.98"
        assert data["approximate"] is True


class TestLoanFlow:
    """End-to-end loan lifecycle"""

    def test_create_and_get(self, client):
        """Test origination and retrieval"""
        r = create_loan(client)
        assert r.status_code == 201
        loan_id = r.json()["loan_id"]

        r = client.get(f"/loans/{loan_id}")
        assert r.status_code == 200
        assert r.json()["total_amount"]["amount"] == "1300.00"

        installments = client.get(f"/loans/{loan_id}/installments").json()["installments"]
        assert [i["amount"]["amount"] for i in installments] == ["300.00", "280.00", "260.00", "240.00", "220.00"]

        loans = client.get("/loans/users/operator-1").json()["loans"]
        assert [loan["id"] for loan in loans] == [loan_id]

    def test_create_invalid(self, client):
        """Test invalid origination requests"""
        assert create_loan(client, periodicity_id="missing").status_code == 400
        assert create_loan(client, amount="0").status_code == 400
        assert create_loan(client, start_date="10/01/2024").status_code == 400

    def test_missing_loan(self, client):
        """Test unknown loans"""
        assert client.get("/loans/missing").status_code == 404
        assert client.get("/loans/missing/installments").status_code == 404
        assert client.post("/loans/missing/cancel").status_code == 404

    def test_pay_fine_reverse(self, client):
        """Test payment, fine and reversal with the creditor cash flow"""
        loan_id = create_loan(client).json()["loan_id"]
        installments = client.get(f"/loans/{loan_id}/installments").json()["installments"]
        first, second = installments[0]["id"], installments[1]["id"]

        r = client.post(f"/loans/{loan_id}/installments/{first}/pay",
                        json={"amount": "300", "payment_date": "2024-01-10"})
        assert r.status_code == 200
        assert r.json()["status"] == "PAID"
        assert r.json()["paid_at"].startswith("2024-01-10T00:00:00")

        cash_flow = client.get("/cash-flow/creditor-1").json()
        assert cash_flow["balance"]["amount"] == "240.00"
        assert len(cash_flow["entries"]) == 4

        r = client.post(f"/loans/{loan_id}/installments/{first}/pay", json={"amount": "300"})
        assert r.status_code == 400

        r = client.post(f"/loans/{loan_id}/installments/{second}/fine", json={"fine_amount": "12,50"})
        assert r.status_code == 200
        assert r.json()["fine_amount"]["amount"] == "12.50"

        r = client.post(f"/loans/{loan_id}/installments/{first}/reverse")
        assert r.status_code == 200
        assert r.json()["status"] == "PENDING"
        assert client.get("/cash-flow/creditor-1").json()["balance"]["amount"] == "0.00"

        r = client.post(f"/loans/{loan_id}/installments/missing/pay", json={"amount": "1"})
        assert r.status_code == 404

    def test_generate_twice(self, client):
        """Test installment generation is one-shot"""
        loan_id = create_loan(client).json()["loan_id"]
        r = client.post(f"/loans/{loan_id}/installments/generate")
        assert r.status_code == 400

    def test_cancel(self, client):
        """Test cancelling a loan"""
        loan_id = create_loan(client).json()["loan_id"]
        r = client.post(f"/loans/{loan_id}/cancel")
        assert r.status_code == 200
        assert r.json()["status"] == "CANCELLED"

    def test_pay_all_and_renew(self, client):
        """Test settling a loan and renewing it"""
        loan_id = create_loan(client).json()["loan_id"]

        r = client.post(f"/loans/{loan_id}/renew", json={"start_date": "2024-07-10"})
        assert r.status_code == 400

        r = client.post(f"/loans/{loan_id}/pay-all", json={"payment_date": "2024-02-01"})
        assert r.status_code == 200
        data = r.json()
        assert data["remaining_amount"]["amount"] == "1300.00"
        assert data["loan"]["status"] == "COMPLETED"
        assert len(data["settled_installments"]) == 5
        assert client.get("/cash-flow/creditor-1").json()["balance"]["amount"] == "1120.00"

        assert client.post(f"/loans/{loan_id}/pay-all").status_code == 400

        r = client.post(f"/loans/{loan_id}/renew", json={"start_date": "2024-07-10"})
        assert r.status_code == 201
        renewed = r.json()
        assert renewed["id"] != loan_id
        assert renewed["status"] == "ACTIVE"
        assert renewed["next_payment_date"] == "2024-07-10"

        installments = client.get(f"/loans/{renewed['id']}/installments").json()["installments"]
        assert [i["due_date"] for i in installments][:2] == ["2024-07-10", "2024-08-10"]

        assert client.post("/loans/missing/pay-all").status_code == 404
        assert client.post("/loans/missing/renew", json={"start_date": "2024-07-10"}).status_code == 404

    def test_mark_overdue(self, client):
        """Test overdue marking runs against today's date"""
        create_loan(client)
        r = client.post("/loans/mark-overdue")
        assert r.status_code == 200
        assert r.json()["updated"] == 5


class TestCashFlowEndpoints:
    """Manual creditor movements"""

    def test_manual_deposit(self, client):
        """Test recording a deposit"""
        r = client.post("/cash-flow/creditor-9", json={
            "type": "CREDIT",
            "category": "DEPOSIT",
            "amount": {"amount": "5000.00", "currency": "BRL"},
            "user_id": "operator-1"
        })
        assert r.status_code == 201
        assert client.get("/cash-flow/creditor-9").json()["balance"]["amount"] == "5000.00"

    def test_reserved_category(self, client):
        """Test installment categories cannot be recorded by hand"""
        r = client.post("/cash-flow/creditor-9", json={
            "type": "CREDIT",
            "category": "LOAN_RETURN",
            "amount": {"amount": "10.00"},
            "user_id": "operator-1"
        })
        assert r.status_code == 400

    def test_invalid_type_filter(self, client):
        """Test unknown movement types"""
        assert client.get("/cash-flow/creditor-9?type=SIDEWAYS").status_code == 400
