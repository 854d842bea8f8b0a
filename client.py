import requests
from typing import Optional


class HoopLogClient:
    """Simple REST client for the HoopLog API.

    ``session`` may be any object with a ``requests``-style ``request``
    method, such as ``fastapi.testclient.TestClient``.
    """

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        resp = self.session.request(
            method, f"{self.base_url}{path}", headers=headers, **kwargs
        )
        resp.raise_for_status()
        return resp.json()

    def signup(self, full_name: str, email: str, password: str) -> dict:
        data = self._request(
            "POST",
            "/auth/signup",
            json={"fullName": full_name, "email": email, "password": password},
        )
        self.token = data["token"]
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        self.token = data["token"]
        return data["user"]

    def prebuilt_sessions(self, **filters: str) -> list:
        return self._request("GET", "/sessions/prebuilt", params=filters)

    def my_sessions(self, **filters) -> list:
        return self._request("GET", "/sessions/mylist", params=filters)

    def get_session(self, session_id: int) -> dict:
        return self._request("GET", f"/sessions/{session_id}")

    def create_session(
        self,
        title: str,
        session_type: str,
        difficulty: str,
        duration: int,
        intensity: int,
        description: str = "",
    ) -> dict:
        return self._request(
            "POST",
            "/sessions",
            json={
                "title": title,
                "type": session_type,
                "difficulty": difficulty,
                "duration": duration,
                "intensity": intensity,
                "description": description,
            },
        )

    def update_session(self, session_id: int, **fields) -> dict:
        return self._request("PUT", f"/sessions/{session_id}", json=fields)

    def delete_session(self, session_id: int) -> dict:
        return self._request("DELETE", f"/sessions/{session_id}")

    def subscribe(self, session_id: int) -> dict:
        return self._request("POST", f"/sessions/{session_id}/subscribe")

    def unsubscribe(self, session_id: int) -> dict:
        return self._request("DELETE", f"/sessions/{session_id}/unsubscribe")

    def update_progress(
        self,
        session_id: int,
        progress: Optional[int] = None,
        favorite: Optional[bool] = None,
    ) -> dict:
        body = {}
        if progress is not None:
            body["progress"] = progress
        if favorite is not None:
            body["favorite"] = favorite
        return self._request("PUT", f"/sessions/{session_id}/progress", json=body)

    def toggle_favorite(self, session_id: int, favorite: Optional[bool] = None) -> dict:
        body = {} if favorite is None else {"favorite": favorite}
        return self._request("POST", f"/sessions/{session_id}/favorite", json=body)

    def reset_progress(self) -> dict:
        return self._request("POST", "/sessions/reset-progress")

    def get_settings(self) -> dict:
        return self._request("GET", "/settings")

    def update_settings(self, **fields) -> dict:
        return self._request("PUT", "/settings", json=fields)

    def profile(self) -> dict:
        return self._request("GET", "/user/profile")

    def random_quote(self) -> dict:
        return self._request("GET", "/quote/random")
