"""Tests for the one-shot ticket message endpoints."""
import pytest


@pytest.fixture
def ticket(app, app_people):
    return app.state.services.directory.create_ticket(app_people.reporter.id, "No hot water")


@pytest.fixture
def assigned_ticket(app, app_people, ticket):
    return app.state.services.directory.assign_ticket(ticket.id, app_people.desk.id)


class TestAuthentication:
    def test_missing_token_is_401(self, api_client, ticket):
        response = api_client.get(f"/tickets/{ticket.id}/messages")
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Authentication error",
            "error": "unauthenticated",
        }

    def test_wrong_scheme_is_401(self, api_client, ticket):
        response = api_client.get(
            f"/tickets/{ticket.id}/messages", headers={"Authorization": "Basic abc"}
        )
        assert response.status_code == 401

    def test_invalid_token_is_401(self, api_client, ticket):
        response = api_client.get(
            f"/tickets/{ticket.id}/messages", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Authentication error"

    def test_token_for_deleted_user_is_401(self, app, api_client, ticket):
        token = app.state.services.verifier.issue("user-that-was-removed")
        response = api_client.get(
            f"/tickets/{ticket.id}/messages", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Authentication error"
        assert response.json()["error"] == "unauthenticated"


class TestGetMessages:
    def test_returns_ordered_thread(self, app, api_client, app_people, auth_header, assigned_ticket):
        store = app.state.services.store
        store.append(assigned_ticket.id, app_people.reporter.id, "first")
        store.append(assigned_ticket.id, app_people.desk.id, "second")

        response = api_client.get(
            f"/tickets/{assigned_ticket.id}/messages", headers=auth_header(app_people.desk)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["count"] == 2
        assert [m["content"] for m in body["data"]["messages"]] == ["first", "second"]
        assert body["data"]["messages"][0]["sender"]["name"] == "Rita Reporter"

    def test_marks_counterpart_read(self, app, api_client, app_people, auth_header, assigned_ticket):
        store = app.state.services.store
        store.append(assigned_ticket.id, app_people.reporter.id, "first")

        api_client.get(f"/tickets/{assigned_ticket.id}/messages", headers=auth_header(app_people.desk))

        assert store.list_by_ticket(assigned_ticket.id)[0].read is True

    def test_unknown_ticket_is_404(self, api_client, app_people, auth_header):
        response = api_client.get("/tickets/nope/messages", headers=auth_header(app_people.desk))
        assert response.status_code == 404
        assert response.json()["message"] == "Ticket not found"

    def test_stranger_is_403(self, api_client, app_people, auth_header, ticket):
        response = api_client.get(
            f"/tickets/{ticket.id}/messages", headers=auth_header(app_people.stranger)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden:no-relationship"
        assert response.json()["message"] == "You do not have permission to access this ticket"


class TestPostMessage:
    def test_creates_message(self, api_client, app_people, auth_header, assigned_ticket):
        response = api_client.post(
            f"/tickets/{assigned_ticket.id}/messages",
            json={"content": "  Is someone coming?  "},
            headers=auth_header(app_people.reporter),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Message sent successfully"
        message = body["data"]["message"]
        assert message["content"] == "Is someone coming?"
        assert message["senderId"] == app_people.reporter.id
        assert message["ticketId"] == assigned_ticket.id
        assert message["read"] is False

    def test_reporter_before_assignment_is_403(self, api_client, app_people, auth_header, ticket):
        response = api_client.post(
            f"/tickets/{ticket.id}/messages",
            json={"content": "hello"},
            headers=auth_header(app_people.reporter),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden:not-assigned"
        assert response.json()["message"] == "Ticket must be assigned before you can send messages"

    @pytest.mark.parametrize("body", [{"content": "   "}, {}, {"content": ""}])
    def test_empty_content_is_400(self, api_client, app_people, auth_header, assigned_ticket, body):
        response = api_client.post(
            f"/tickets/{assigned_ticket.id}/messages",
            json=body,
            headers=auth_header(app_people.desk),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Message content is required"

    def test_admin_cannot_post(self, api_client, app_people, auth_header, assigned_ticket):
        response = api_client.post(
            f"/tickets/{assigned_ticket.id}/messages",
            json={"content": "hi"},
            headers=auth_header(app_people.admin),
        )
        assert response.status_code == 403


class TestMarkRead:
    def test_marks_and_reports_count(self, app, api_client, app_people, auth_header, assigned_ticket):
        store = app.state.services.store
        store.append(assigned_ticket.id, app_people.desk.id, "a")
        store.append(assigned_ticket.id, app_people.desk.id, "b")
        headers = auth_header(app_people.reporter)

        unread = api_client.get(f"/tickets/{assigned_ticket.id}/messages/unread", headers=headers)
        assert unread.json()["data"]["count"] == 2

        response = api_client.patch(f"/tickets/{assigned_ticket.id}/messages/read", headers=headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Messages marked as read"
        assert response.json()["data"]["updated"] == 2

        again = api_client.patch(f"/tickets/{assigned_ticket.id}/messages/read", headers=headers)
        assert again.json()["data"]["updated"] == 0

    def test_stranger_is_403(self, api_client, app_people, auth_header, ticket):
        response = api_client.patch(
            f"/tickets/{ticket.id}/messages/read", headers=auth_header(app_people.stranger)
        )
        assert response.status_code == 403


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json()["success"] is True
