"""Match mailbox messages to tracked applications and guess status changes.

The heuristic is deliberately simple: three layers tried in a fixed order,
first hit wins. It is best effort, not a search index.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from app.models.application import (
    STATUS_INTERVIEWING,
    STATUS_OFFER,
    STATUS_REJECTED,
)

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'https?://[^\s)<>"\']+', re.IGNORECASE)

# Checked in order; the first keyword group present decides the status.
# A message mentioning both "interview" and "offer" is therefore Interviewing.
STATUS_KEYWORDS = [
    (STATUS_INTERVIEWING, ('interview',)),
    (STATUS_OFFER, ('offer',)),
    (STATUS_REJECTED, ('reject', 'regret', 'not selected')),
]

MATCH_URL = 'url'
MATCH_TITLE_COMPANY = 'title_company'
MATCH_RECIPIENT = 'recipient'


@dataclass
class MatchResult:
    application: Optional[object] = None
    status_hint: Optional[str] = None
    matched_by: Optional[str] = None

    @property
    def matched(self):
        return self.application is not None


def extract_urls(text: str) -> list:
    """URL-looking substrings, with trailing sentence punctuation removed."""
    if not text:
        return []
    return [u.rstrip('.,;:!?') for u in URL_PATTERN.findall(text)]


def infer_status(text: str) -> Optional[str]:
    """First-match-wins keyword classification of lower-cased text."""
    lower = (text or '').lower()
    for status, keywords in STATUS_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return status
    return None


def _job_field(application, name):
    """Read a job field from the application, falling back to its job snapshot."""
    value = getattr(application, {'title': 'job_title', 'url': 'job_url'}.get(name, name), None)
    if value:
        return str(value)
    job = (getattr(application, 'data', None) or {}).get('job') or {}
    return str(job.get(name) or '')


def match_by_url(urls, applications, jobs):
    for url in urls:
        u = url.lower()
        for job in jobs:
            job_url = (job.url or '').lower()
            if not job_url or job_url not in u:
                continue
            for application in applications:
                if application.job_id is not None and str(application.job_id) == str(job.id):
                    return application
        for application in applications:
            stored = _job_field(application, 'url').lower()
            if stored and u in stored:
                return application
    return None


def match_by_title_company(search_text, applications):
    for application in applications:
        title = _job_field(application, 'title').lower().strip()
        company = _job_field(application, 'company').lower().strip()
        # Empty strings would match everything
        if (title and title in search_text) or (company and company in search_text):
            return application
    return None


def match_by_recipient(to_header, applications):
    to_lower = (to_header or '').lower()
    if not to_lower:
        return None
    for application in applications:
        contact = (getattr(application, 'contact_email', None) or '').lower().strip()
        if not contact:
            job = (getattr(application, 'data', None) or {}).get('job') or {}
            contact = str(job.get('contact_email') or '').lower().strip()
        if contact and contact in to_lower:
            return application
    return None


def correlate(message, applications: Iterable, jobs: Iterable) -> MatchResult:
    """Find the application a message belongs to and propose a status.

    Args:
        message: A MailMessage
        applications: Candidate applications for the message's owner
        jobs: Known jobs, used for URL correlation

    Returns:
        MatchResult; application and status_hint are None when nothing matched
    """
    applications = list(applications)
    jobs = list(jobs)
    search_text = message.search_text

    application = match_by_url(extract_urls(message.snippet), applications, jobs)
    matched_by = MATCH_URL if application else None

    if application is None:
        application = match_by_title_company(search_text, applications)
        matched_by = MATCH_TITLE_COMPANY if application else None

    if application is None:
        application = match_by_recipient(message.to_address, applications)
        matched_by = MATCH_RECIPIENT if application else None

    if application is None:
        logger.debug('No application matched message %s', message.id)
        return MatchResult()

    return MatchResult(
        application=application,
        status_hint=infer_status(search_text),
        matched_by=matched_by,
    )
