import requests
from typing import List, Optional


class LedgerClient:
    """Simple REST client for the training ledger API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, **params):
        resp = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _post(self, path: str, json=None, **params):
        resp = requests.post(
            f"{self.base_url}{path}", params=params, json=json, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def health(self) -> dict:
        return self._get("/health")

    def create_workout(self, name: str, exercise_ids: List[str], **params) -> str:
        return self._post("/workouts", json=list(exercise_ids), name=name, **params)["id"]

    def list_workouts(self, **params):
        return self._get("/workouts", **params)

    def get_workout(self, workout_id: str) -> dict:
        return self._get(f"/workouts/{workout_id}")

    def start_workout(self, workout_id: str) -> dict:
        return self._post(f"/workouts/{workout_id}/start")

    def complete_workout(self, workout_id: str) -> dict:
        return self._post(f"/workouts/{workout_id}/complete")

    def cancel_workout(self, workout_id: str) -> dict:
        return self._post(f"/workouts/{workout_id}/cancel")

    def add_set(
        self,
        workout_id: str,
        exercise_id: str,
        weight: float,
        reps: int,
        is_completed: bool = False,
    ) -> dict:
        return self._post(
            f"/workouts/{workout_id}/exercises/{exercise_id}/sets",
            weight=weight,
            reps=reps,
            is_completed=is_completed,
        )

    def list_templates(self, **params):
        return self._get("/templates", **params)

    def user_workout_from_template(self, template_id: str, name: Optional[str] = None) -> str:
        params = {"name": name} if name else {}
        return self._post(f"/templates/{template_id}/user_workouts", **params)["id"]

    def start_user_workout(self, user_workout_id: str, prefill_sets: bool = False) -> str:
        return self._post(
            f"/user_workouts/{user_workout_id}/start", prefill_sets=prefill_sets
        )["id"]

    def stats(self, **params) -> dict:
        return self._get("/stats", **params)

    def progress(self, **params) -> dict:
        return self._get("/progress", **params)

    def personal_records(self, **params):
        return self._get("/personal_records", **params)

    def todays_recommendation(self, **params) -> Optional[dict]:
        return self._get("/recommendations/today", **params)
