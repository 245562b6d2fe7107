from __future__ import annotations

import csv
from io import StringIO

from abis.api import db
from abis.api.app import create_app
from abis.api.config import Config
from abis.api.models.document import Document
from abis.api.utils.pdf_generator import build_sections, generate_document_record_pdf
from abis.api.utils.reports import to_csv


class ReportsTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    RATELIMIT_ENABLED = False
    ADMIN_AUTH_MODE = 'disabled'
    BARANGAY_NAME = 'Barangay San Roque'
    WEB_URL = 'https://abis.example.gov'


def _make_app(tmp_path):
    config = type('ReportsCaseConfig', (ReportsTestConfig,), {'UPLOAD_FOLDER': tmp_path / 'uploads'})
    return create_app(config)


def test_to_csv_quotes_special_characters():
    rows = [{'a': 'plain', 'b': 'theft, with damage'}, {'a': 'say "hi"', 'b': 'line\nbreak'}, {'a': None}]
    out = to_csv(rows, ['a', 'b'])

    assert out.splitlines()[0] == 'a,b'
    assert '"theft, with damage"' in out
    assert '"say ""hi"""' in out

    parsed = list(csv.reader(StringIO(out)))
    assert parsed[1] == ['plain', 'theft, with damage']
    assert parsed[2] == ['say "hi"', 'line\nbreak']
    assert parsed[3] == ['', '']


def test_blotter_csv_round_trips_commas(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = client.post('/api/blotter', json={'title': 'Break-in', 'description': 'theft, with damage'})
        assert resp.status_code == 201

        resp = client.get('/api/reports/blotter/csv')
        assert resp.status_code == 200
        assert resp.mimetype == 'text/csv'
        assert 'blotter-report.csv' in resp.headers['Content-Disposition']

        body = resp.get_data(as_text=True)
        assert '"theft, with damage"' in body
        rows = list(csv.DictReader(StringIO(body)))
        assert rows[0]['description'] == 'theft, with damage'
        assert rows[0]['reporterName'] == 'Anonymous'


def test_documents_csv_lists_newest_first(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        client.post('/api/documents', json={'trackingNumber': 'ABIS-A', 'residentName': 'Dela Cruz, Juan'})
        client.post('/api/documents', json={'trackingNumber': 'ABIS-B', 'formFields': {'name': 'Maria'}})

        resp = client.get('/api/reports/documents/csv')
        assert resp.status_code == 200
        rows = list(csv.DictReader(StringIO(resp.get_data(as_text=True))))
        assert [r['trackingNumber'] for r in rows] == ['ABIS-B', 'ABIS-A']
        assert rows[0]['residentName'] == 'Maria'
        assert rows[1]['residentName'] == 'Dela Cruz, Juan'


def test_pdf_sections_skip_empty_groups(tmp_path):
    app = _make_app(tmp_path)

    with app.app_context():
        db.create_all()
        minimal = Document(tracking_number='ABIS-MIN', doc_type='general', form_data={'purpose': ''})
        db.session.add(minimal)
        db.session.commit()

        titles = [title for title, _ in build_sections(minimal)]
        assert titles == ['Request Details']

        full = Document(
            tracking_number='ABIS-FULL',
            doc_type='barangay_clearance',
            resident_name='Juan Dela Cruz',
            form_data={'purpose': 'Employment'},
            remarks='Claim at window 2',
            crime_record_status='no',
            certification_count=2,
            payment_method='gcash',
            payment_status='paid',
        )
        db.session.add(full)
        db.session.commit()

        titles = [title for title, _ in build_sections(full)]
        assert titles == ['Request Details', 'Purpose / Remarks', 'Certification Record', 'Payment Information']

        pdf = generate_document_record_pdf(full, 'Barangay San Roque')
        assert pdf.startswith(b'%PDF')


def test_document_pdf_route(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = client.post('/api/documents', json={'residentName': 'Juan'}).get_json()

        resp = client.get(f"/api/reports/document/{doc['id']}/pdf")
        assert resp.status_code == 200
        assert resp.mimetype == 'application/pdf'
        assert resp.data.startswith(b'%PDF')
        assert f"{doc['trackingNumber']}.pdf" in resp.headers['Content-Disposition']

        assert client.get('/api/reports/document/9999/pdf').status_code == 404
