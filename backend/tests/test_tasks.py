# tests/test_tasks.py — Task lifecycle, moves, assignment, search, broadcasts
import pytest
from httpx import AsyncClient


async def _create_list(client, board_id, title, headers):
    resp = await client.post("/api/lists", json={"title": title, "boardId": board_id}, headers=headers)
    assert resp.status_code == 201
    return resp.json()


async def _create_task(client, list_id, title, headers, **extra):
    resp = await client.post("/api/tasks", json={"title": title, "listId": list_id, **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestMoveScenario:
    @pytest.mark.asyncio
    async def test_move_between_lists(self, client: AsyncClient, alice, bob, auth_headers, subscribe, live_gateway):
        headers = auth_headers(alice)
        board = (await client.post("/api/boards", json={"title": "Alpha"}, headers=headers)).json()
        assert [(m["userId"], m["role"]) for m in board["members"]] == [(alice.id, "owner")]

        todo = await _create_list(client, board["id"], "Todo", headers)
        doing = await _create_list(client, board["id"], "Doing", headers)
        assert (todo["position"], doing["position"]) == (1024, 2048)

        task = await _create_task(client, todo["id"], "Write spec", headers)
        assert task["position"] == 1024
        assert task["boardId"] == board["id"]

        await client.post(f"/api/boards/{board['id']}/members", json={"userId": bob.id}, headers=headers)
        await live_gateway.flush()
        alice_tab_1 = subscribe(alice, board["id"])
        alice_tab_2 = subscribe(alice, board["id"])
        bob_tab = subscribe(bob, board["id"])

        resp = await client.put(
            f"/api/tasks/{task['id']}/move",
            json={"targetListId": doing["id"], "position": 512},
            headers=headers,
        )
        assert resp.status_code == 200
        moved = resp.json()
        assert moved["listId"] == doing["id"]
        assert moved["position"] == 512

        activity = (await client.get(f"/api/activity/{board['id']}", headers=headers)).json()
        latest = activity["activities"][0]
        assert latest["action"] == "TASK_MOVED"
        assert latest["entityType"] == "task"
        assert latest["details"] == {"fromListId": todo["id"], "toListId": doing["id"], "position": 512}

        await live_gateway.flush()
        assert bob_tab.events() == ["task:moved"]
        assert bob_tab.sent[0]["data"]["id"] == task["id"]
        assert bob_tab.sent[0]["data"]["listId"] == doing["id"]
        assert alice_tab_1.sent == []
        assert alice_tab_2.sent == []

    @pytest.mark.asyncio
    async def test_move_within_same_list(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        first = await _create_task(client, todo["id"], "First", headers)
        second = await _create_task(client, todo["id"], "Second", headers)
        assert second["position"] == 2048

        await client.put(
            f"/api/tasks/{second['id']}/move",
            json={"targetListId": todo["id"], "position": 512},
            headers=headers,
        )
        detail = (await client.get(f"/api/boards/{board['id']}", headers=headers)).json()
        assert [t["id"] for t in detail["lists"][0]["tasks"]] == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_move_to_missing_list(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Stuck", headers)

        resp = await client.put(
            f"/api/tasks/{task['id']}/move",
            json={"targetListId": "nowhere", "position": 10},
            headers=headers,
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "TF-NF-004"

    @pytest.mark.asyncio
    async def test_move_to_other_board_rejected(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Stay home", headers)

        other = (await client.post("/api/boards", json={"title": "Beta"}, headers=headers)).json()
        foreign = await _create_list(client, other["id"], "Elsewhere", headers)

        resp = await client.put(
            f"/api/tasks/{task['id']}/move",
            json={"targetListId": foreign["id"], "position": 10},
            headers=headers,
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "TF-NF-004"

        unchanged = (await client.get(f"/api/tasks/{task['id']}", headers=headers)).json()
        assert unchanged["listId"] == todo["id"]
        assert unchanged["boardId"] == board["id"]


class TestTaskMutations:
    @pytest.mark.asyncio
    async def test_create_defaults(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Plain", headers)
        assert task["priority"] == "medium"
        assert task["creatorId"] == alice.id
        assert task["creator"]["name"] == "Alice"
        assert task["assigneeId"] is None

        activity = (await client.get(f"/api/activity/{board['id']}", headers=headers)).json()
        latest = activity["activities"][0]
        assert latest["action"] == "TASK_CREATED"
        assert latest["details"] == {"title": "Plain", "listId": todo["id"]}

    @pytest.mark.asyncio
    async def test_create_in_missing_list(self, client: AsyncClient, alice, auth_headers):
        resp = await client.post(
            "/api/tasks", json={"title": "Orphan", "listId": "missing"}, headers=auth_headers(alice),
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "TF-NF-002"

    @pytest.mark.asyncio
    async def test_non_member_cannot_create(self, client: AsyncClient, alice, carol, board, auth_headers):
        todo = await _create_list(client, board["id"], "Todo", auth_headers(alice))
        resp = await client.post(
            "/api/tasks", json={"title": "Sneaky", "listId": todo["id"]}, headers=auth_headers(carol),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_update_fields(self, client: AsyncClient, alice, bob, board, auth_headers):
        todo = await _create_list(client, board["id"], "Todo", auth_headers(alice))
        task = await _create_task(client, todo["id"], "Draft", auth_headers(alice))

        resp = await client.put(
            f"/api/tasks/{task['id']}",
            json={"title": "Final", "priority": "urgent"},
            headers=auth_headers(bob),
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Final"
        assert resp.json()["priority"] == "urgent"
        assert resp.json()["position"] == task["position"]

    @pytest.mark.asyncio
    async def test_invalid_priority(self, client: AsyncClient, alice, board, auth_headers):
        todo = await _create_list(client, board["id"], "Todo", auth_headers(alice))
        task = await _create_task(client, todo["id"], "Draft", auth_headers(alice))
        resp = await client.put(
            f"/api/tasks/{task['id']}", json={"priority": "whenever"}, headers=auth_headers(alice),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_assign_and_clear(self, client: AsyncClient, alice, bob, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Review", headers)

        resp = await client.put(f"/api/tasks/{task['id']}/assign", json={"assigneeId": bob.id}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["assignee"]["id"] == bob.id

        resp = await client.put(f"/api/tasks/{task['id']}/assign", json={"assigneeId": None}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["assigneeId"] is None
        assert resp.json()["assignee"] is None

        activity = (await client.get(f"/api/activity/{board['id']}", headers=headers)).json()
        assigned = [a["details"] for a in activity["activities"] if a["action"] == "TASK_ASSIGNED"]
        assert assigned == [{"assigneeId": None}, {"assigneeId": bob.id}]

    @pytest.mark.asyncio
    async def test_assign_non_member_rejected(self, client: AsyncClient, alice, carol, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Review", headers)

        resp = await client.put(f"/api/tasks/{task['id']}/assign", json={"assigneeId": carol.id}, headers=headers)
        assert resp.status_code == 422

        resp = await client.post(
            "/api/tasks",
            json={"title": "Also bad", "listId": todo["id"], "assigneeId": carol.id},
            headers=headers,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, alice, bob, board, auth_headers, subscribe, live_gateway):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        task = await _create_task(client, todo["id"], "Temporary", headers)
        await live_gateway.flush()
        bob_tab = subscribe(bob, board["id"])

        resp = await client.delete(f"/api/tasks/{task['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {
            "message": "Task deleted successfully",
            "boardId": board["id"],
            "taskId": task["id"],
            "listId": todo["id"],
        }

        resp = await client.get(f"/api/tasks/{task['id']}", headers=headers)
        assert resp.status_code == 404

        activity = (await client.get(f"/api/activity/{board['id']}", headers=headers)).json()
        deletions = [a for a in activity["activities"] if a["action"] == "TASK_DELETED"]
        assert len(deletions) == 1
        assert deletions[0]["details"] == {"title": "Temporary"}

        await live_gateway.flush()
        assert bob_tab.events() == ["task:deleted"]
        assert bob_tab.sent[0]["data"]["taskId"] == task["id"]

    @pytest.mark.asyncio
    async def test_get_task_non_member(self, client: AsyncClient, alice, carol, board, auth_headers):
        todo = await _create_list(client, board["id"], "Todo", auth_headers(alice))
        task = await _create_task(client, todo["id"], "Private", auth_headers(alice))
        resp = await client.get(f"/api/tasks/{task['id']}", headers=auth_headers(carol))
        assert resp.status_code == 403


class TestSearch:
    @pytest.mark.asyncio
    async def test_no_matches(self, client: AsyncClient, alice, board, auth_headers):
        resp = await client.get(
            f"/api/tasks/search/{board['id']}", params={"q": "nothing"}, headers=auth_headers(alice),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "tasks": [],
            "pagination": {"page": 1, "limit": 20, "total": 0, "totalPages": 0},
        }

    @pytest.mark.asyncio
    async def test_matches_title_and_description(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        await _create_task(client, todo["id"], "Fix LOGIN bug", headers)
        await _create_task(client, todo["id"], "Refactor", headers, description="touches login flow")
        await _create_task(client, todo["id"], "Unrelated", headers)

        resp = await client.get(
            f"/api/tasks/search/{board['id']}", params={"q": "login"}, headers=headers,
        )
        data = resp.json()
        assert {t["title"] for t in data["tasks"]} == {"Fix LOGIN bug", "Refactor"}
        assert data["pagination"]["total"] == 2
        assert all(t["list"] == {"id": todo["id"], "title": "Todo"} for t in data["tasks"])
        assert all(t["boardId"] == board["id"] for t in data["tasks"])

    @pytest.mark.asyncio
    async def test_pagination(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        for i in range(25):
            await _create_task(client, todo["id"], f"Task {i}", headers)

        first = (await client.get(f"/api/tasks/search/{board['id']}", headers=headers)).json()
        assert len(first["tasks"]) == 20
        assert first["pagination"] == {"page": 1, "limit": 20, "total": 25, "totalPages": 2}

        second = (await client.get(
            f"/api/tasks/search/{board['id']}", params={"page": 2}, headers=headers,
        )).json()
        assert len(second["tasks"]) == 5

        small = (await client.get(
            f"/api/tasks/search/{board['id']}", params={"limit": 10}, headers=headers,
        )).json()
        assert small["pagination"]["totalPages"] == 3

    @pytest.mark.asyncio
    async def test_bad_paging_values_fall_back(self, client: AsyncClient, alice, board, auth_headers):
        resp = await client.get(
            f"/api/tasks/search/{board['id']}",
            params={"page": "abc", "limit": "-5"},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 200
        assert resp.json()["pagination"]["page"] == 1
        assert resp.json()["pagination"]["limit"] == 20

    @pytest.mark.asyncio
    async def test_wildcard_characters_match_literally(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        for title in ("alpha", "beta", "100% done"):
            await _create_task(client, todo["id"], title, headers)

        async def titles(q):
            resp = await client.get(f"/api/tasks/search/{board['id']}", params={"q": q}, headers=headers)
            assert resp.status_code == 200
            return [t["title"] for t in resp.json()["tasks"]]

        assert await titles("_") == []
        assert await titles("%") == ["100% done"]
        assert await titles("0%") == ["100% done"]

    @pytest.mark.asyncio
    async def test_huge_page_is_empty_not_an_error(self, client: AsyncClient, alice, board, auth_headers):
        headers = auth_headers(alice)
        todo = await _create_list(client, board["id"], "Todo", headers)
        await _create_task(client, todo["id"], "Only one", headers)

        resp = await client.get(
            f"/api/tasks/search/{board['id']}", params={"page": str(10 ** 20)}, headers=headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["tasks"] == []
        assert data["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_non_member_cannot_search(self, client: AsyncClient, carol, board, auth_headers):
        resp = await client.get(f"/api/tasks/search/{board['id']}", headers=auth_headers(carol))
        assert resp.status_code == 403
