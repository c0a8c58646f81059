"""End-to-end walk through the pipeline: website lead -> contacted -> client -> project."""

from contractor_crm.models.activity import Activity


class TestLeadToProject:

    def test_full_pipeline(self, client, seed_data):
        # Website form, anonymous
        response = client.post("/api/crm/lead", json={
            "name": "Jane Doe",
            "email": "jane@example.com",
            "serviceType": "Bathroom Remodel",
            "message": "Master bath refresh",
        })
        assert response.status_code == 200
        lead_id = response.get_json()["lead_id"]

        # Office picks it up
        client.post("/auth/login", json={
            "email": "admin@contractor.local", "password": "admin123",
        })
        lead = client.get(f"/api/crm/leads/{lead_id}").get_json()
        assert lead["status"] == "new"
        assert lead["origin"] == "auto_website_form"

        response = client.patch("/api/crm/leads", json={"id": lead_id, "status": "contacted"})
        assert response.status_code == 200

        timeline = client.get(
            f"/api/crm/activities?leadId={lead_id}&type=status_changed"
        ).get_json()
        assert timeline["total"] == 1
        assert timeline["items"][0]["metadata"] == {
            "old_status": "new",
            "new_status": "contacted",
        }

        # Convert to client
        before = Activity.query.count()
        response = client.post("/api/crm/clients", json={
            "fullName": "Jane Doe",
            "email": "jane@example.com",
            "sourceLeadId": lead_id,
        })
        assert response.status_code == 201
        jane = response.get_json()
        assert jane["status"] == "active"
        assert Activity.query.count() == before + 2

        lead = client.get(f"/api/crm/leads/{lead_id}").get_json()
        assert lead["status"] == "won"
        assert lead["converted_to_client"]["id"] == jane["id"]

        clients = client.get("/api/crm/clients").get_json()
        assert jane["id"] in [c["id"] for c in clients["items"]]

        # Book the project and finish it
        response = client.post("/api/crm/deals", json={
            "title": "Jane master bath",
            "clientId": jane["id"],
            "dealType": "bathroom_remodel",
            "value": 18500,
        })
        assert response.status_code == 201
        deal = response.get_json()

        response = client.put("/api/crm/deals", json={
            "id": deal["id"],
            "title": "Jane master bath",
            "clientId": jane["id"],
            "value": 18500,
            "status": "completed",
            "actualEndDate": "2026-12-15",
        })
        assert response.status_code == 200
        assert response.get_json()["actual_end_date"] == "2026-12-15"

        deal_timeline = client.get(f"/api/crm/activities?dealId={deal['id']}").get_json()
        assert sorted(item["type"] for item in deal_timeline["items"]) == [
            "deal_completed", "deal_created",
        ]

        # Client cannot go while the project exists
        assert client.delete(f"/api/crm/clients?id={jane['id']}").status_code == 400
        response = client.delete(f"/api/crm/deals?id={deal['id']}")
        assert response.get_json()["activities_deleted"] == 2
        assert client.delete(f"/api/crm/clients?id={jane['id']}").status_code == 200
