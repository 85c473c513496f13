import json
from datetime import date, timedelta


def test_dashboard(client, backend, login_as):
    login_as("customer")
    backend.add(
        "GET",
        "/api/CustomerDashboard",
        {
            "$id": "1",
            "vehicles": {"$values": [{"vehicleId": 1, "make": "Honda"}]},
            "recentOrders": {"$values": [{"orderId": 12, "status": "in progress"}]},
            "invoices": {"$values": [{"invoiceId": 4, "totalAmount": 900, "status": "unpaid"}]},
        },
    )

    resp = client.get("/customer/dashboard")

    assert resp.status_code == 200
    assert "In Progress" in resp.text
    assert "/customer/invoice/pay/4" in resp.text
    assert "My Vehicles" in resp.text


def test_dashboard_survives_backend_error(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/CustomerDashboard", {"message": "boom"}, status_code=500)

    resp = client.get("/customer/dashboard")

    assert resp.status_code == 200
    assert "Could not load your dashboard." in resp.text


def test_add_vehicle(client, backend, login_as):
    login_as("customer")
    backend.add("POST", "/api/vehicles", {"vehicleId": 3})

    resp = client.post(
        "/customer/vehicles",
        data={"make": "Toyota", "model": "Corolla", "year": "2019", "license_plate": "LEB-987"},
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/customer/vehicles"
    sent = json.loads(backend.calls("POST", "/api/vehicles")[0].content)
    assert sent == {"make": "Toyota", "model": "Corolla", "year": 2019, "licensePlate": "LEB-987"}


def test_add_vehicle_rejects_bad_year(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [])

    resp = client.post(
        "/customer/vehicles",
        data={"make": "Toyota", "model": "Corolla", "year": "1850", "license_plate": "LEB-987"},
    )

    assert resp.status_code == 400
    assert "Year must be between 1900" in resp.text
    assert 'value="LEB-987"' in resp.text
    assert backend.calls("POST", "/api/vehicles") == []


def test_delete_vehicle(client, backend, login_as):
    login_as("customer")
    backend.add("DELETE", "/api/vehicles/3", None, status_code=204)

    resp = client.post("/customer/vehicles/3/delete")

    assert resp.status_code == 303
    assert len(backend.calls("DELETE", "/api/vehicles/3")) == 1


def test_services_by_category(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/services/category/Engine", [{"serviceId": 2, "serviceName": "Tune-up", "category": "Engine"}])

    resp = client.get("/customer/service?category=Engine")

    assert resp.status_code == 200
    assert "Tune-up" in resp.text


CATALOGUE = [
    {"serviceId": 5, "serviceName": "Full inspection", "category": "Inspection", "subCategory": "Engine", "price": 1500},
    {"serviceId": 2, "serviceName": "Oil change", "category": "Maintenance", "price": 3000},
]


def test_create_order_with_inspection(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/services", CATALOGUE)
    backend.add("POST", "/api/Orders/CreateWithInspection", {"orderId": 42})
    when = (date.today() + timedelta(days=3)).isoformat()

    resp = client.post(
        "/customer/orders/new",
        data={
            "vehicle_id": "1",
            "inspection_type_id": "5",
            "service_id": "2",
            "inspection_date": when,
            "time_slot": "09:00 AM - 11:00 AM",
            "notes": "Strange noise",
        },
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/customer/orders/42"
    sent = json.loads(backend.calls("POST", "/api/Orders/CreateWithInspection")[0].content)
    assert sent == {
        "vehicleId": 1,
        "inspectionTypeId": 5,
        "subCategory": "Engine",
        "serviceId": 2,
        "inspectionDate": when,
        "timeSlot": "09:00 AM - 11:00 AM",
        "notes": "Strange noise",
        "includesInspection": True,
    }


def test_create_order_requires_inspection_type(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [{"vehicleId": 1, "make": "Honda", "model": "Civic"}])
    backend.add("GET", "/api/services", CATALOGUE)
    when = (date.today() + timedelta(days=3)).isoformat()

    resp = client.post(
        "/customer/orders/new",
        data={"vehicle_id": "1", "inspection_date": when, "time_slot": "09:00 AM - 11:00 AM"},
    )

    assert resp.status_code == 400
    assert "Please choose an inspection type." in resp.text
    assert backend.calls("POST", "/api/Orders/CreateWithInspection") == []


def test_create_order_rejects_non_inspection_service_as_type(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [])
    backend.add("GET", "/api/services", CATALOGUE)
    when = (date.today() + timedelta(days=3)).isoformat()

    resp = client.post(
        "/customer/orders/new",
        data={
            "vehicle_id": "1",
            "inspection_type_id": "2",
            "inspection_date": when,
            "time_slot": "09:00 AM - 11:00 AM",
        },
    )

    assert resp.status_code == 400
    assert "Please choose an inspection type." in resp.text
    assert backend.calls("POST", "/api/Orders/CreateWithInspection") == []


def test_order_form_splits_inspections_from_services(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [])
    backend.add("GET", "/api/services", CATALOGUE)

    resp = client.get("/customer/orders/new")

    assert resp.status_code == 200
    inspection_select = resp.text.split('name="inspection_type_id" required')[1].split("</select>")[0]
    assert "Full inspection" in inspection_select
    assert "Oil change" not in inspection_select


def test_create_order_in_the_past(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [{"vehicleId": 1, "make": "Honda", "model": "Civic"}])
    backend.add("GET", "/api/services", [])
    yesterday = (date.today() - timedelta(days=1)).isoformat()

    resp = client.post(
        "/customer/orders/new",
        data={
            "vehicle_id": "1",
            "inspection_type_id": "5",
            "inspection_date": yesterday,
            "time_slot": "09:00 AM - 11:00 AM",
        },
    )

    assert resp.status_code == 400
    assert "cannot be in the past" in resp.text
    assert backend.calls("POST", "/api/Orders/CreateWithInspection") == []


def test_order_form_loads_time_slots(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/vehicles", [])
    backend.add("GET", "/api/services", [])
    backend.add("GET", "/api/TimeSlots/Available", {"availableSlots": ["09:00 AM - 11:00 AM", "01:00 PM - 03:00 PM"]})

    resp = client.get("/customer/orders/new?inspection_date=2030-05-01")

    assert resp.status_code == 200
    assert "01:00 PM - 03:00 PM" in resp.text
    assert backend.calls("GET", "/api/TimeSlots/Available")[0].url.params["date"] == "2030-05-01"


def test_order_detail(client, backend, login_as):
    login_as("customer")
    backend.add("GET", "/api/Orders/42", {"orderId": 42, "status": "completed", "invoiceId": 9})

    resp = client.get("/customer/orders/42")

    assert resp.status_code == 200
    assert "Completed" in resp.text
    assert "/customer/invoice/pay/9" in resp.text


def test_profile_update(client, backend, login_as):
    login_as("customer")
    backend.add("PUT", "/api/auth/update", {"message": "ok"})

    resp = client.post(
        "/customer/profile",
        data={"name": "Ali Khan", "email": "ali@example.com", "phone": "0300", "address": "Lahore"},
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/customer/profile?updated=1"


def test_change_password_mismatch(client, backend, login_as):
    login_as("customer")

    resp = client.post(
        "/customer/profile/password",
        data={"current_password": "old", "new_password": "secret1", "confirm_new_password": "secret2"},
    )

    assert resp.status_code == 400
    assert "Passwords do not match" in resp.text
    assert backend.calls("POST", "/api/auth/change-password") == []
