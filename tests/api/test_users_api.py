from gymapp.models.notification import Notification
from gymapp.models.user import MonthlySubscription, SubscriptionStatus, UserCredit, UserRole

API = "/api/v1"


class TestUserCredits:
    def test_admin_updates_plan_and_user_sees_it(self, client, login, admin_user, make_user, yoga):
        user = make_user()
        login(admin_user)

        response = client.put(f"{API}/users/{user.id}/plan", json={
            "class_type_id": yoga.id, "credits_to_add": 5, "is_subscription": True, "auto_renew_amount": 10,
        })
        assert response.status_code == 200
        assert response.json()["credits_by_type"] == {str(yoga.id): 5}

        login(user)
        response = client.get(f"{API}/users/me/credits")
        assert response.status_code == 200
        body = response.json()
        assert body["credits_by_type"] == {str(yoga.id): 5}
        assert body["subscriptions"][0]["auto_renew_amount"] == 10

        logs = client.get(f"{API}/users/me/credit-logs").json()
        assert [log["reason"] for log in logs] == ["ajuste_manual_admin"]

    def test_client_cannot_manage_other_users(self, client, login, make_user, yoga):
        other = make_user()
        login(make_user(roles=[UserRole.CLIENTE]))

        response = client.put(f"{API}/users/{other.id}/plan", json={"class_type_id": yoga.id, "credits_to_add": 5})

        assert response.status_code == 403

    def test_negative_balance_is_rejected(self, client, login, admin_user, make_user, yoga):
        user = make_user(credits={yoga.id: 1})
        login(admin_user)

        response = client.put(f"{API}/users/{user.id}/plan", json={"class_type_id": yoga.id, "credits_to_add": -2})

        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    def test_free_pass_and_removals(self, client, login, admin_user, make_user, yoga):
        user = make_user(credits={yoga.id: 2})
        login(admin_user)

        response = client.put(f"{API}/users/{user.id}/free-pass", json={
            "free_pass_from": "2030-03-01", "free_pass_until": "2030-03-31",
        })
        assert response.json()["free_pass_until"] == "2030-03-31"

        response = client.put(f"{API}/users/{user.id}/free-pass", json={
            "free_pass_from": "2030-03-31", "free_pass_until": "2030-03-01",
        })
        assert response.status_code == 400

        response = client.delete(f"{API}/users/{user.id}/credits")
        assert response.json() == {"message": "Todos los créditos del usuario han sido eliminados."}

        response = client.delete(f"{API}/users/{user.id}/subscriptions/{yoga.id}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Suscripción no encontrada."

    def test_unknown_user(self, client, login, admin_user):
        login(admin_user)
        response = client.get(f"{API}/users/999/credits")
        assert response.status_code == 404


class TestClassTypes:
    def test_create_list_and_available_credits(self, client, login, admin_user, make_user):
        login(admin_user)
        response = client.post(f"{API}/class-types", json={"name": "Pilates", "price": 1500})
        assert response.status_code == 201
        pilates = response.json()

        make_user(credits={pilates["id"]: 3})

        response = client.get(f"{API}/class-types", params={"keyword": "pila"})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["available_credits"] == 0

    def test_duplicate_name(self, client, login, admin_user, yoga):
        login(admin_user)
        response = client.post(f"{API}/class-types", json={"name": "yoga"})
        assert response.status_code == 400

    def test_universal_type_is_protected(self, client, login, admin_user, universal_type):
        login(admin_user)
        response = client.delete(f"{API}/class-types/{universal_type.id}")
        assert response.status_code == 403

    def test_type_in_use_cannot_be_deleted(self, client, login, admin_user, yoga, make_instance):
        make_instance(yoga)
        login(admin_user)
        response = client.delete(f"{API}/class-types/{yoga.id}")
        assert response.status_code == 409

    def test_delete_unused_type(self, client, login, admin_user, make_class_type):
        boxeo = make_class_type(name="Boxeo")
        login(admin_user)
        response = client.delete(f"{API}/class-types/{boxeo.id}")
        assert response.json() == {"message": "Tipo de clase eliminado."}

    def test_delete_type_whose_credits_were_spent(self, client, login, db, admin_user, make_user, make_class_type):
        boxeo = make_class_type(name="Boxeo")
        make_user(credits={boxeo.id: 0})
        login(admin_user)

        response = client.delete(f"{API}/class-types/{boxeo.id}")

        assert response.status_code == 200
        assert db.query(UserCredit).count() == 0

    def test_type_with_subscription_cannot_be_deleted(self, client, login, db, admin_user, make_user, make_class_type):
        boxeo = make_class_type(name="Boxeo")
        db.add(MonthlySubscription(
            user_id=make_user().id, class_type_id=boxeo.id,
            status=SubscriptionStatus.AUTOMATICA, auto_renew_amount=8
        ))
        db.commit()
        login(admin_user)

        response = client.delete(f"{API}/class-types/{boxeo.id}")

        assert response.status_code == 409
        assert response.json()["error"] == "state_conflict"


class TestNotifications:
    def test_list_and_mark_as_read(self, client, login, db, make_user):
        user = make_user()
        other = make_user()
        db.add_all([
            Notification(user_id=user.id, title="Hola", message="uno"),
            Notification(user_id=other.id, title="Ajena", message="dos"),
        ])
        db.commit()
        login(user)

        notifications = client.get(f"{API}/notifications", params={"unread_only": True}).json()
        assert [n["title"] for n in notifications] == ["Hola"]

        response = client.put(f"{API}/notifications/{notifications[0]['id']}/read")
        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert client.get(f"{API}/notifications", params={"unread_only": True}).json() == []

    def test_cannot_read_someone_elses_notification(self, client, login, db, make_user):
        owner = make_user()
        notification = Notification(user_id=owner.id, title="Privada", message="x")
        db.add(notification)
        db.commit()
        login(make_user())

        response = client.put(f"{API}/notifications/{notification.id}/read")

        assert response.status_code == 404
