"""
Tests for the Salesforce client handle
"""

import json
from dataclasses import dataclass
from typing import Optional

import pytest
import responses

from sfbatch import Salesforce
from sfbatch.api.bulk import JobState
from sfbatch.auth import Creds
from sfbatch.config import ENV_OVERRIDES
from sfbatch.errors import (
    BatchFailureError,
    JobFailedError,
    RecordFailuresError,
    ValidationError,
)


@dataclass
class Account:
    Name: str
    Id: Optional[str] = None


@dataclass
class Contact:
    LastName: str


@pytest.fixture
def sf(credential, transport):
    return Salesforce(credential, transport, poll_interval=0)


@pytest.fixture
def ingest_url(api_url):
    return f"{api_url}/jobs/ingest"


def add_bulk_job(ingest_url, job_id="1234", final_state="JobComplete", processed=2):
    responses.add(responses.POST, ingest_url, json={"id": job_id, "state": "Open"})
    responses.add(responses.PUT, f"{ingest_url}/{job_id}/batches", status=201)
    responses.add(responses.PATCH, f"{ingest_url}/{job_id}", json={"id": job_id, "state": "UploadComplete"})
    responses.add(responses.GET, f"{ingest_url}/{job_id}", json={
        "id": job_id,
        "state": final_state,
        "numberRecordsFailed": 0,
        "numberRecordsProcessed": processed,
    })


class TestValidationGate:
    """Test that invalid calls never reach the network"""

    @responses.activate
    def test_no_auth(self, transport):
        sf = Salesforce(transport=transport)

        with pytest.raises(ValidationError):
            sf.insert_collection("Account", [{"Name": "a"}], 200)
        with pytest.raises(ValidationError):
            sf.insert_bulk("Account", [{"Name": "a"}], 200)
        with pytest.raises(ValidationError):
            sf.insert_one("Account", {"Name": "a"})
        with pytest.raises(ValidationError):
            sf.query("SELECT Id FROM Account")
        with pytest.raises(ValidationError):
            sf.do_request("GET", "/limits")

        assert len(responses.calls) == 0

    @responses.activate
    def test_single_record_rejected(self, sf):
        """Collection operations need a list of records"""
        with pytest.raises(ValidationError):
            sf.insert_composite("Account", Account(Name="a"), 200, False)
        with pytest.raises(ValidationError):
            sf.insert_bulk("Account", 0, 200)

        assert len(responses.calls) == 0

    @responses.activate
    def test_mixed_records_rejected(self, sf):
        with pytest.raises(ValidationError):
            sf.insert_collection("Account", [Account(Name="a"), Contact(LastName="b")], 200)

        assert len(responses.calls) == 0

    @pytest.mark.parametrize("batch_size", [0, 201])
    @responses.activate
    def test_batch_size_rejected(self, sf, batch_size):
        with pytest.raises(ValidationError):
            sf.insert_collection("Account", [{"Name": "a"}], batch_size)
        with pytest.raises(ValidationError):
            sf.update_composite("Account", [{"Id": "001"}], batch_size, True)

        assert len(responses.calls) == 0

    @responses.activate
    def test_bulk_batch_size_rejected(self, sf):
        with pytest.raises(ValidationError):
            sf.insert_bulk("Account", [{"Name": "a"}], 10001)

        assert len(responses.calls) == 0

    @pytest.mark.parametrize("batch_size", [1, 200])
    @responses.activate
    def test_batch_size_accepted(self, sf, api_url, batch_size):
        responses.add(responses.POST, f"{api_url}/composite/sobjects", json=[
            {"id": "001", "success": True, "errors": []},
        ])

        outcomes = sf.insert_collection("Account", [{"Name": "a"}], batch_size)

        assert outcomes[0].id == "001"

    @responses.activate
    def test_missing_id_rejected(self, sf):
        """Update and delete need an Id on every record"""
        with pytest.raises(ValidationError, match="record 1"):
            sf.update_collection("Account", [{"Id": "001"}, {"Name": "b"}], 200)
        with pytest.raises(ValidationError):
            sf.delete_bulk("Account", [Account(Name="a")], 200)
        with pytest.raises(ValidationError):
            sf.update_one("Account", {"Name": "a"})

        assert len(responses.calls) == 0

    @responses.activate
    def test_custom_accessor_missing_field(self, credential, transport):
        sf = Salesforce(credential, transport, field_accessor=lambda record, name: record[name])

        with pytest.raises(ValidationError):
            sf.delete_collection("Account", [{"Name": "a"}], 200)

        assert len(responses.calls) == 0

    @responses.activate
    def test_missing_external_id_rejected(self, sf):
        with pytest.raises(ValidationError):
            sf.upsert_collection("Account", "ExternalId__c", [{"Name": "a"}], 200)

        assert len(responses.calls) == 0


class TestSingleRecords:
    """Test one-record operations through the handle"""

    @responses.activate
    def test_insert_one(self, sf, api_url):
        responses.add(
            responses.POST, f"{api_url}/sobjects/Account",
            json={"id": "001", "success": True, "errors": []}, status=201
        )

        assert sf.insert_one("Account", Account(Name="Acme")) == "001"

    @responses.activate
    def test_upsert_one(self, sf, api_url):
        responses.add(responses.PATCH, f"{api_url}/sobjects/Account/ExternalId__c/acc1", status=204)

        assert sf.upsert_one("Account", "ExternalId__c", {"ExternalId__c": "acc1", "Name": "Acme"}) is None

    @responses.activate
    def test_delete_one(self, sf, api_url):
        responses.add(responses.DELETE, f"{api_url}/sobjects/Account/001", status=204)

        sf.delete_one("Account", Account(Name="Acme", Id="001"))

        assert len(responses.calls) == 1


class TestQuery:
    """Test SOQL queries through the handle"""

    @responses.activate
    def test_query_into_dataclass(self, sf, api_url):
        """Fields the dataclass does not declare are dropped"""
        responses.add(responses.GET, f"{api_url}/query", json={
            "totalSize": 1,
            "done": True,
            "records": [{"attributes": {"type": "Account"}, "Id": "001", "Name": "Acme", "Phone": "1"}],
        })

        records = sf.query("SELECT Id, Name, Phone FROM Account", Account)

        assert records == [Account(Name="Acme", Id="001")]

    @responses.activate
    def test_do_request(self, sf, api_url):
        responses.add(responses.GET, f"{api_url}/limits", json={"DailyApiRequests": {"Max": 15000}})

        response = sf.do_request("GET", "/limits")

        assert response.json()["DailyApiRequests"]["Max"] == 15000


class TestCompositeAndCollections:
    """Test batched REST operations through the handle"""

    @responses.activate
    def test_delete_collection_failures(self, sf, api_url):
        responses.add(responses.DELETE, f"{api_url}/composite/sobjects", json=[
            {"id": "001", "success": True, "errors": []},
            {"id": "002", "success": False, "errors": [{"statusCode": "ENTITY_IS_DELETED", "message": "deleted"}]},
        ])

        with pytest.raises(RecordFailuresError) as exc:
            sf.delete_collection("Account", [{"Id": "001"}, {"Id": "002"}], 200)

        assert exc.value.failed_ids == ["002"]

    @responses.activate
    def test_upsert_composite(self, sf, api_url):
        responses.add(responses.POST, f"{api_url}/composite", json={"compositeResponse": [
            {"body": {"id": "001", "success": True, "created": True}, "httpStatusCode": 201, "referenceId": "ref_Account_0"},
        ]})

        outcomes = sf.upsert_composite("Account", "ExternalId__c", [{"ExternalId__c": "acc1"}], 200, True)

        assert outcomes[0].id == "001"
        payload = json.loads(responses.calls[0].request.body)
        assert payload["allOrNone"] is True
        assert payload["compositeRequest"][0]["url"].endswith("/sobjects/Account/ExternalId__c/acc1")


class TestBulk:
    """Test Bulk API 2.0 operations through the handle"""

    @responses.activate
    def test_insert_bulk_wait(self, sf, ingest_url):
        add_bulk_job(ingest_url)
        responses.add(responses.GET, f"{ingest_url}/1234/failedResults/", body="", content_type="text/csv")

        job_ids = sf.insert_bulk("Account", [{"key": "val"}, {"key": "val1"}], 200, wait_for_results=True)

        assert job_ids == ["1234"]
        assert sf.get_failed_records("1234") == ""

    @responses.activate
    def test_insert_bulk_no_wait(self, sf, ingest_url):
        add_bulk_job(ingest_url)

        job_ids = sf.insert_bulk("Account", [Account(Name="a")], 200)

        assert job_ids == ["1234"]
        assert [c.request.method for c in responses.calls] == ["POST", "PUT", "PATCH"]

    @responses.activate
    def test_insert_bulk_file(self, sf, ingest_url, tmp_path):
        path = tmp_path / "accounts.csv"
        path.write_text("Name,Phone\nAcme,1\nGlobex,2\n")
        add_bulk_job(ingest_url)

        job_ids = sf.insert_bulk_file("Account", str(path), 200)

        assert job_ids == ["1234"]
        upload = [c for c in responses.calls if c.request.method == "PUT"][0]
        body = upload.request.body
        assert (body.decode() if isinstance(body, bytes) else body) == "Name,Phone\nAcme,1\nGlobex,2\n"

    @responses.activate
    def test_bulk_file_missing(self, sf, tmp_path):
        with pytest.raises(ValidationError, match="file not found"):
            sf.insert_bulk_file("Account", str(tmp_path / "missing.csv"), 200)

        assert len(responses.calls) == 0

    @responses.activate
    def test_query_bulk_export(self, sf, api_url, tmp_path):
        query_url = f"{api_url}/jobs/query"
        responses.add(responses.POST, query_url, json={"id": "750Q", "state": "UploadComplete"})
        responses.add(responses.GET, f"{query_url}/750Q", json={"id": "750Q", "state": "JobComplete"})
        responses.add(
            responses.GET, f"{query_url}/750Q/results", body='"Id","Name"\n"001","Acme"\n"002","Globex"\n',
            content_type="text/csv", headers={"Sforce-Locator": "null", "Sforce-NumberOfRecords": "2"}
        )
        path = tmp_path / "export.csv"

        count = sf.query_bulk_export("SELECT Id, Name FROM Account", str(path))

        assert count == 2
        assert path.read_text() == "Id,Name\n001,Acme\n002,Globex\n"

    @responses.activate
    def test_get_job_results(self, sf, ingest_url):
        responses.add(responses.GET, f"{ingest_url}/1234", json={
            "id": "1234", "state": "InProgress", "numberRecordsProcessed": 5,
        })

        results = sf.get_job_results("1234")

        assert results.state == JobState.IN_PROGRESS
        assert results.number_records_processed == 5

    @responses.activate
    def test_wait_for_jobs_failure(self, sf, ingest_url):
        responses.add(responses.GET, f"{ingest_url}/750A", json={"id": "750A", "state": "JobComplete"})
        responses.add(responses.GET, f"{ingest_url}/750B", json={
            "id": "750B", "state": "Failed", "errorMessage": "InvalidBatch",
        })

        with pytest.raises(BatchFailureError) as exc:
            sf.wait_for_jobs(["750A", "750B"])

        assert exc.value.job_ids == ["750A", "750B"]
        assert len(exc.value.errors) == 1
        assert isinstance(exc.value.errors[0], JobFailedError)
        assert exc.value.errors[0].job_id == "750B"

    @responses.activate
    def test_wait_for_jobs(self, sf, ingest_url):
        responses.add(responses.GET, f"{ingest_url}/750A", json={"id": "750A", "state": "JobComplete"})

        results = sf.wait_for_jobs(["750A"])

        assert [r.id for r in results] == ["750A"]


class TestAuthentication:
    """Test building an authenticated handle"""

    @responses.activate
    def test_init_password_flow(self):
        responses.add(responses.POST, "https://test.salesforce.com/services/oauth2/token", json={
            "access_token": "token",
            "instance_url": "https://example.my.salesforce.com/",
            "token_type": "Bearer",
        })
        creds = Creds(
            domain="test", username="user@example.com", password="pw", security_token="tok",
            consumer_key="key", consumer_secret="secret"
        )

        sf = Salesforce.init(creds, poll_interval=0)

        assert sf.credential.access_token == "token"
        assert sf.credential.instance_url == "https://example.my.salesforce.com"
        assert sf.poll_interval == 0

    @responses.activate
    def test_from_config(self, tmp_path, monkeypatch):
        for var in ENV_OVERRIDES:
            monkeypatch.delenv(var, raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "salesforce:\n"
            "  access_token: token\n"
            "  domain: example.my.salesforce.com\n"
            "client:\n"
            "  poll_interval: 0.5\n"
            "  max_workers: 4\n"
        )
        sf = Salesforce.from_config(str(path))

        assert sf.credential.instance_url == "https://example.my.salesforce.com"
        assert sf.poll_interval == 0.5
        assert sf.max_workers == 4
        assert len(responses.calls) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
