# tests/performance/locustfile.py
from locust import HttpUser, between, task


class ProcurementUser(HttpUser):
    wait_time = between(1, 5)

    def on_start(self):
        self.client.post("/historical/sample?count=150")

    @task
    def get_health(self):
        self.client.get("/health")

    @task
    def get_combinations(self):
        self.client.get("/combinations")

    @task
    def get_summary(self):
        self.client.get("/historical/summary")

    @task
    def get_outliers(self):
        self.client.get("/historical/outliers")

    @task
    def download_template(self):
        self.client.get("/templates/historical")
