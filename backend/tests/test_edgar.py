from datetime import date

import httpx
import pytest

from spac_os.services.edgar import (
    EdgarClient,
    EdgarClientError,
    filing_url,
    normalize_cik,
    parse_recent_filings,
)

SUBMISSIONS = {
    "cik": "1841761",
    "name": "SOREN ACQUISITION CORP",
    "filings": {
        "recent": {
            "form": ["10-Q", "SC 13G", "8-K", "CORRESP", "S-1"],
            "filingDate": ["2024-05-14", "2024-02-09", "2024-03-01", "2023-12-01", "2021-02-10"],
            "accessionNumber": [
                "0001213900-24-042001",
                "0000950123-24-001122",
                "0001213900-24-018877",
                "0001213900-23-099999",
                "0001104659-21-019876",
            ],
            "primaryDocument": ["f10q0324.htm", "sc13g.htm", "ea1934.htm", "filename1.htm", "tm215.htm"],
            "primaryDocDescription": ["10-Q", "SC 13G", "8-K", "CORRESP", "S-1"],
        }
    },
}


def test_normalize_cik():
    assert normalize_cik("1841761") == "0001841761"
    assert normalize_cik("CIK0001841761") == "0001841761"
    assert normalize_cik(1841761) == "0001841761"
    with pytest.raises(EdgarClientError):
        normalize_cik("18417-61")
    with pytest.raises(EdgarClientError):
        normalize_cik("12345678901")


def test_filing_url_drops_dashes_and_padding():
    url = filing_url("https://www.sec.gov/Archives/edgar/data/", "0001841761", "0001213900-24-018877", "ea1934.htm")
    assert url == "https://www.sec.gov/Archives/edgar/data/1841761/000121390024018877/ea1934.htm"


def test_parse_recent_filings_keeps_spac_forms_newest_first():
    filings = parse_recent_filings(SUBMISSIONS, "0001841761", "https://archives.test")
    assert [filing.form_type for filing in filings] == ["10-Q", "8-K", "SC 13G", "S-1"]
    assert filings[0].filed_date == date(2024, 5, 14)
    assert filings[1].edgar_url == "https://archives.test/1841761/000121390024018877/ea1934.htm"

    everything = parse_recent_filings(SUBMISSIONS, "0001841761", "https://archives.test", spac_forms_only=False, limit=2)
    assert [filing.form_type for filing in everything] == ["10-Q", "8-K"]


def test_parse_recent_filings_rejects_unexpected_payloads():
    with pytest.raises(EdgarClientError):
        parse_recent_filings({"filings": {}}, "0001841761", "https://archives.test")


def test_client_fetches_submissions_with_user_agent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["user_agent"] = request.headers["User-Agent"]
        return httpx.Response(200, json=SUBMISSIONS)

    client = EdgarClient(
        base_url="https://data.sec.test",
        archives_url="https://archives.test",
        user_agent="SPAC OS tests ops@example.com",
        transport=httpx.MockTransport(handler),
    )
    filings = client.recent_filings("1841761", limit=1)
    assert seen["url"] == "https://data.sec.test/submissions/CIK0001841761.json"
    assert seen["user_agent"] == "SPAC OS tests ops@example.com"
    assert [filing.accession_number for filing in filings] == ["0001213900-24-042001"]


def test_client_wraps_http_errors():
    client = EdgarClient(
        base_url="https://data.sec.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(404, text="Not Found")),
    )
    with pytest.raises(EdgarClientError):
        client.fetch_submissions("1841761")


def test_client_wraps_non_json_bodies():
    client = EdgarClient(
        base_url="https://data.sec.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>rate limited</html>")),
    )
    with pytest.raises(EdgarClientError):
        client.fetch_submissions("1841761")
