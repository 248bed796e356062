import csv

import pytest
from faker import Faker

from config_utils import Settings
from data_utils import Dataset, render_dataset
from server import create_app


@pytest.fixture
def fake() -> Faker:
    Faker.seed(42)
    return Faker()


@pytest.fixture
def make_rows(fake):
    def _make(n: int):
        return [
            {
                "id": f"P-{i:03d}",
                "name": fake.catch_phrase(),
                "category": fake.random_element(elements=["Finance", "Marketing", "Operations"]),
                "tasks": "; ".join(fake.words(nb=3)),
                "owner": fake.name(),
            }
            for i in range(1, n + 1)
        ]
    return _make


@pytest.fixture
def write_csv(tmp_path):
    def _write(rows, name="dataset.csv", fieldnames=None):
        path = tmp_path / name
        fieldnames = fieldnames or list(rows[0].keys())
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
        return str(path)
    return _write


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="secret-1",
        group_id="group-1",
        report_id="report-1",
        openai_api_key="sk-test",
        dataset_path=str(tmp_path / "missing.csv"),
    )


@pytest.fixture
def dataset() -> Dataset:
    records = (
        {"id": "P-001", "name": "Website Redesign", "category": "Marketing", "tasks": "Wireframes"},
        {"id": "P-002", "name": "Payroll Migration", "category": "Finance", "tasks": "Data mapping"},
    )
    return Dataset(records=records, text=render_dataset(records))


@pytest.fixture
def app_factory(settings, dataset):
    def _factory(client=None, search=None, **overrides):
        kwargs = {"settings": settings, "dataset": dataset, "completion_client": client}
        if search is not None:
            kwargs["search"] = search
        kwargs.update(overrides)
        app = create_app(**kwargs)
        app.config["TESTING"] = True
        return app
    return _factory
