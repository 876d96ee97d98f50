"""SEC EDGAR submissions client."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from spac_os.config import get_settings
from spac_os.log import get_logger

logger = get_logger(__name__)

SPAC_FORM_TYPES = frozenset(
    {
        "S-1",
        "S-1/A",
        "S-4",
        "S-4/A",
        "8-K",
        "8-K/A",
        "10-K",
        "10-K/A",
        "10-Q",
        "10-Q/A",
        "DEF 14A",
        "DEFM14A",
        "PREM14A",
        "425",
        "SC 13D",
        "SC 13D/A",
        "SC 13G",
        "SC 13G/A",
        "3",
        "4",
        "5",
    }
)


class EdgarClientError(RuntimeError):
    pass


@dataclass
class EdgarFiling:
    form_type: str
    filed_date: date
    accession_number: str
    primary_document: str
    edgar_url: str
    description: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "form_type": self.form_type,
            "filed_date": self.filed_date.isoformat(),
            "accession_number": self.accession_number,
            "primary_document": self.primary_document,
            "edgar_url": self.edgar_url,
            "description": self.description,
        }


def normalize_cik(cik: Any) -> str:
    digits = str(cik or "").strip().lstrip("CIK").strip()
    if not digits.isdigit():
        raise EdgarClientError(f"Invalid CIK: {cik!r}")
    if len(digits) > 10:
        raise EdgarClientError(f"CIK longer than 10 digits: {cik!r}")
    return digits.zfill(10)


def filing_url(archives_url: str, cik: str, accession_number: str, primary_document: str) -> str:
    folder = accession_number.replace("-", "")
    return f"{archives_url.rstrip('/')}/{int(cik)}/{folder}/{primary_document}"


def parse_recent_filings(
    payload: Dict[str, Any],
    cik: str,
    archives_url: str,
    spac_forms_only: bool = True,
    limit: Optional[int] = None,
) -> List[EdgarFiling]:
    """Turn the column-oriented `filings.recent` block into filings, newest first."""
    try:
        recent = payload["filings"]["recent"]
        forms = recent["form"]
        filed = recent["filingDate"]
        accessions = recent["accessionNumber"]
        documents = recent["primaryDocument"]
    except (KeyError, TypeError) as exc:
        raise EdgarClientError(f"Unexpected EDGAR submissions payload: missing {exc}") from exc
    descriptions = recent.get("primaryDocDescription") or []

    filings: List[EdgarFiling] = []
    for index, form_type in enumerate(forms):
        if spac_forms_only and form_type not in SPAC_FORM_TYPES:
            continue
        try:
            filed_date = date.fromisoformat(filed[index])
            accession = accessions[index]
            document = documents[index]
        except (IndexError, ValueError, TypeError) as exc:
            raise EdgarClientError(f"Malformed EDGAR filing row {index}: {exc}") from exc
        filings.append(
            EdgarFiling(
                form_type=form_type,
                filed_date=filed_date,
                accession_number=accession,
                primary_document=document,
                edgar_url=filing_url(archives_url, cik, accession, document),
                description=descriptions[index] if index < len(descriptions) else None,
            )
        )

    filings.sort(key=lambda filing: filing.filed_date, reverse=True)
    if limit is not None:
        filings = filings[:limit]
    return filings


class EdgarClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        archives_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.edgar_base_url).rstrip("/")
        self.archives_url = archives_url or settings.edgar_archives_url
        self._headers = {
            "User-Agent": user_agent or settings.edgar_user_agent,
            "Accept": "application/json",
        }
        self._timeout = timeout_seconds or settings.edgar_timeout_seconds
        self._transport = transport

    def fetch_submissions(self, cik: Any) -> Dict[str, Any]:
        padded = normalize_cik(cik)
        url = f"{self.base_url}/submissions/CIK{padded}.json"
        with httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            headers=self._headers,
            transport=self._transport,
        ) as client:
            try:
                response = client.get(url)
                response.raise_for_status()
                payload = response.json()
            except httpx.HTTPError as exc:
                raise EdgarClientError(f"EDGAR request failed for CIK {padded}: {exc}") from exc
            except ValueError as exc:
                raise EdgarClientError(f"EDGAR returned non-JSON body for CIK {padded}") from exc
        if not isinstance(payload, dict):
            raise EdgarClientError(f"Unexpected EDGAR submissions payload for CIK {padded}")
        return payload

    def recent_filings(
        self,
        cik: Any,
        spac_forms_only: bool = True,
        limit: Optional[int] = None,
    ) -> List[EdgarFiling]:
        padded = normalize_cik(cik)
        payload = self.fetch_submissions(padded)
        filings = parse_recent_filings(
            payload,
            padded,
            self.archives_url,
            spac_forms_only=spac_forms_only,
            limit=limit,
        )
        logger.info("Fetched %d EDGAR filings for CIK %s", len(filings), padded)
        return filings
