"""Client for the resume PDF rendering service."""

import requests
from flask import current_app

from app.errors import TransportError


class ResumeRenderer:
    """Materialize a resume as a PDF and fetch its bytes."""

    def __init__(self, render_url, timeout=None, session=None):
        self.render_url = render_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def ensure_pdf(self, resume_id) -> str:
        """Ask the renderer for a PDF of the resume; returns a downloadable URL."""
        try:
            resp = self.session.post(self.render_url, json={'id': resume_id}, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(None, str(e), message=f'render-pdf request failed: {e}') from e

        if not resp.ok:
            current_app.logger.error('render-pdf failed for resume %s: %s', resume_id, resp.status_code)
            raise TransportError(resp.status_code, resp.text, message='render-pdf failed')

        try:
            url = (resp.json() or {}).get('url')
        except ValueError:
            url = None
        if not url:
            raise TransportError(resp.status_code, resp.text, message='render-pdf returned no url')
        return url

    def download(self, url) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(None, str(e), message=f'PDF download failed: {e}') from e
        if not resp.ok:
            raise TransportError(resp.status_code, resp.text, message='Failed to download generated PDF')
        return resp.content
