import requests


class TCClient:
    """
    Small synchronous client for the coordinator service.

    ``session`` defaults to a requests.Session; anything with the same
    get/post signature works.
    """

    def __init__(self, base_url="http://127.0.0.1:8100", session=None, timeout=3):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def status(self, attempt_id: str):
        r = self.session.get(f"{self.base_url}/transactions/{attempt_id}", timeout=self.timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return r.json()

    def run_cleanup(self) -> dict:
        r = self.session.post(f"{self.base_url}/admin/cleanup/run", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def health(self) -> bool:
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
            return r.status_code == 200
        except requests.RequestException:
            return False
