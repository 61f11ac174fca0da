"""Recipient discovery for job postings that carry no explicit contact field."""

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import unquote, urljoin

import requests

from app.schemas.application import CONTACT_EMAIL_KEYS, URL_KEYS

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
MAILTO_PATTERN = re.compile(r'href=["\']mailto:([^"\'>?\s]+)(?:\?[^"\']*)?["\']', re.IGNORECASE)
APPLY_LINK_PATTERN = re.compile(
    r'href=["\']([^"\']+)["\'][^>]*>\s*(?:apply now|apply here|apply|view original)', re.IGNORECASE,
)

# Free-text fields job boards use for the posting body
TEXT_KEYS = ('description', 'contents', 'summary', 'snippet', 'cleanDescription',
             'how_to_apply', 'how_to_apply_text')
PAGE_KEYS = ('url', 'apply_url', 'redirect_url', 'landing_page')

USER_AGENT = 'Mozilla/5.0 (compatible; ApplicationTracker/1.0)'


@dataclass
class RecipientCandidates:
    emails: list = field(default_factory=list)
    apply_url: str = None

    def to_dict(self):
        return {'emails': self.emails, 'applyUrl': self.apply_url}


class RecipientFinder:
    """Collect candidate contact addresses for a job from its fields and posting pages."""

    def __init__(self, timeout=None, session=None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def find(self, job, fetch_pages=True):
        """Return the candidate emails and apply URL for a raw job payload.

        Emails are lower-cased and de-duplicated in discovery order. Page
        fetch failures are logged and skipped.
        """
        found = RecipientCandidates()

        def add(value):
            email = _clean(value)
            if email and EMAIL_PATTERN.fullmatch(email) and email not in found.emails:
                found.emails.append(email)

        for key in CONTACT_EMAIL_KEYS:
            add(job.get(key))

        company = job.get('company')
        if isinstance(company, dict):
            for key in ('email', 'contact_email', 'contactEmail'):
                add(company.get(key))

        for key in TEXT_KEYS:
            text = job.get(key)
            if isinstance(text, str):
                for match in EMAIL_PATTERN.findall(text):
                    add(match)

        if fetch_pages:
            for url in _page_urls(job):
                apply_url = self._scan_page(url, add)
                if apply_url and not found.apply_url:
                    found.apply_url = apply_url

        if not found.apply_url:
            found.apply_url = next((job[k] for k in URL_KEYS if job.get(k)), None)
        return found

    def _scan_page(self, url, add):
        """Harvest addresses from one posting page. Returns its apply link, if any."""
        try:
            resp = self.session.get(url, headers={'User-Agent': USER_AGENT},
                                    timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning('Failed to fetch job page %s: %s', url, e)
            return None
        if not resp.ok:
            logger.info('Job page %s returned %s', url, resp.status_code)
            return None

        html = resp.text or ''
        for match in MAILTO_PATTERN.findall(html):
            add(unquote(match))
        for match in EMAIL_PATTERN.findall(html):
            add(match)

        link = APPLY_LINK_PATTERN.search(html)
        if link:
            return urljoin(resp.url or url, link.group(1))
        return None


def _clean(value):
    if not isinstance(value, str):
        return None
    return value.strip().strip('\'"').lower() or None


def _page_urls(job):
    urls = [job.get(k) for k in PAGE_KEYS]
    refs = job.get('refs')
    if isinstance(refs, dict):
        urls.append(refs.get('landing_page'))

    seen = []
    for url in urls:
        if isinstance(url, str) and url.startswith(('http://', 'https://')) and url not in seen:
            seen.append(url)
    return seen
