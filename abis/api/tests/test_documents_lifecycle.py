from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

from sqlalchemy.pool import NullPool

from abis.api import db
from abis.api.app import create_app
from abis.api.config import Config
from abis.api.models.document import Document
from abis.api.utils.form_fields import resolve_contact, resolve_field, NAME_ALIASES


PDF_BYTES = b'%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n'


class DocumentsTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    RATELIMIT_ENABLED = False
    ADMIN_AUTH_MODE = 'disabled'
    STRICT_STATUS_TRANSITIONS = False
    SENDGRID_API_KEY = ''
    SMTP_SERVER = ''
    SMS_PROVIDER = 'disabled'
    SUPABASE_URL = ''
    SUPABASE_KEY = ''
    SUPABASE_SERVICE_KEY = ''


def _make_app(tmp_path, **overrides):
    attrs = {'UPLOAD_FOLDER': tmp_path / 'uploads'}
    attrs.update(overrides)
    config = type('DocumentsCaseConfig', (DocumentsTestConfig,), attrs)
    return create_app(config)


def _create(client, **payload):
    body = {'residentName': 'Juan Dela Cruz', 'documentType': 'barangay_clearance'}
    body.update(payload)
    resp = client.post('/api/documents', json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_assigns_tracking_number_and_pickup_code(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client, purpose='Employment', contactEmail='juan@example.com')

        assert doc['trackingNumber'].startswith('ABIS-')
        assert len(doc['trackingNumber'].split('-')[-1]) == 6
        assert len(doc['pickupCode']) == 6
        assert doc['pickupCode'] == doc['pickupCode'].upper()
        assert doc['status'] == 'pending'
        assert doc['documentType'] == 'barangay_clearance'
        assert doc['formFields']['purpose'] == 'Employment'
        assert doc['formFields']['contactEmail'] == 'juan@example.com'
        assert doc['paymentMethod'] == 'none'
        assert doc['paymentStatus'] == 'unpaid'
        assert doc['crimeRecordStatus'] == 'unknown'
        assert doc['certificationCount'] == 0
        assert doc['issuedAt'] is None


def test_duplicate_tracking_number_is_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        _create(client, trackingNumber='ABIS-DUP-1', residentName='First')

        resp = client.post('/api/documents', json={'trackingNumber': 'ABIS-DUP-1', 'residentName': 'Second'})
        assert resp.status_code == 409
        assert 'details' not in resp.get_json()

        docs = Document.query.filter_by(tracking_number='ABIS-DUP-1').all()
        assert len(docs) == 1
        assert docs[0].resident_name == 'First'


def test_issued_at_is_stamped_and_sticky(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'issued'})
        assert resp.status_code == 200
        issued_at = resp.get_json()['issuedAt']
        assert issued_at is not None

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'pending'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['status'] == 'pending'
        assert body['issuedAt'] == issued_at


def test_set_status_rejects_unknown_value(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'archived'})
        assert resp.status_code == 400
        assert client.get(f"/api/documents/{doc['id']}").get_json()['status'] == 'pending'

        resp = client.post('/api/documents/9999/set_status', json={'status': 'accepted'})
        assert resp.status_code == 404


def test_strict_transitions_only_when_enabled(tmp_path):
    app = _make_app(tmp_path, STRICT_STATUS_TRANSITIONS=True)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'issued'})
        assert resp.status_code == 400

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'accepted'})
        assert resp.status_code == 200
        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'issued'})
        assert resp.status_code == 200


def test_certification_increments_exactly_n_times(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        for expected in range(1, 6):
            resp = client.post(f"/api/documents/{doc['id']}/certification")
            assert resp.status_code == 200
            assert resp.get_json()['certificationCount'] == expected

        db.session.expire_all()
        assert db.session.get(Document, doc['id']).certification_count == 5

        assert client.post('/api/documents/9999/certification').status_code == 404


def test_crime_record_accepts_only_yes_or_no(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(f"/api/documents/{doc['id']}/crime-record", json={'crimeRecordStatus': 'maybe'})
        assert resp.status_code == 400
        assert client.get(f"/api/documents/{doc['id']}").get_json()['crimeRecordStatus'] == 'unknown'

        resp = client.post(f"/api/documents/{doc['id']}/crime-record", json={'crimeRecordStatus': 'no'})
        assert resp.status_code == 200
        assert resp.get_json()['crimeRecordStatus'] == 'no'


def test_payment_update_is_partial(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.patch(f"/api/documents/{doc['id']}/payment", json={'paymentMethod': 'gcash'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['paymentMethod'] == 'gcash'
        assert body['paymentStatus'] == 'unpaid'

        resp = client.patch(f"/api/documents/{doc['id']}/payment", json={'paymentStatus': 'pending_verification'})
        body = resp.get_json()
        assert body['paymentMethod'] == 'gcash'
        assert body['paymentStatus'] == 'pending_verification'

        resp = client.patch(f"/api/documents/{doc['id']}/payment", json={'paymentStatus': 'refunded'})
        assert resp.status_code == 400
        assert client.get(f"/api/documents/{doc['id']}").get_json()['paymentStatus'] == 'pending_verification'


def test_payment_proof_upload_is_recorded(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.patch(
            f"/api/documents/{doc['id']}/payment",
            data={
                'paymentStatus': 'pending_verification',
                'paymentProof': (BytesIO(PDF_BYTES), 'receipt.pdf', 'application/pdf'),
            },
            content_type='multipart/form-data',
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['paymentStatus'] == 'pending_verification'
        assert body['paymentProofUrl'].startswith('payments/')
        assert (tmp_path / 'uploads' / body['paymentProofUrl']).exists()

        # payment proofs are never served from the public uploads route
        assert client.get(f"/uploads/{body['paymentProofUrl']}").status_code == 403


def test_certificate_attach_marks_ready_and_download_serves_it(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)
        assert doc['status'] == 'pending'

        resp = client.post(
            f"/api/documents/{doc['id']}/certificate",
            data={'certificate': (BytesIO(PDF_BYTES), 'clearance.pdf', 'application/pdf')},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['status'] == 'ready_for_pickup'
        assert body['issuedAt'] is not None
        assert body['certificateFileName'] == 'clearance.pdf'
        assert body['certificateUrl'].startswith('certificates/')

        resp = client.get(f"/api/documents/download/{doc['trackingNumber']}")
        assert resp.status_code == 200
        assert resp.data == PDF_BYTES
        assert 'clearance.pdf' in resp.headers.get('Content-Disposition', '')


def test_download_redirects_to_remote_certificate(tmp_path):
    app = _make_app(tmp_path, SUPABASE_URL='https://project.supabase.co')
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)
        record = db.session.get(Document, doc['id'])
        record.certificate_url = 'https://project.supabase.co/storage/v1/object/public/abis-files/certificates/c.pdf'
        record.certificate_filename = 'c.pdf'
        db.session.commit()

        resp = client.get(f"/api/documents/download/{doc['trackingNumber']}")
        assert resp.status_code == 302
        assert resp.headers['Location'].startswith(record.certificate_url)
        assert 'download=c.pdf' in resp.headers['Location']


def test_download_without_certificate_generates_pdf(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.get(f"/api/documents/download/{doc['trackingNumber']}")
        assert resp.status_code == 200
        assert resp.mimetype == 'application/pdf'
        assert resp.data.startswith(b'%PDF')

        assert client.get('/api/documents/download/ABIS-missing').status_code == 404


def test_certificate_rejects_unsupported_type(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(
            f"/api/documents/{doc['id']}/certificate",
            data={'certificate': (BytesIO(b'hello'), 'notes.txt', 'text/plain')},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 400
        assert 'Unsupported file type' in resp.get_json()['error']
        assert client.get(f"/api/documents/{doc['id']}").get_json()['status'] == 'pending'


def test_notification_failure_does_not_fail_status_change(tmp_path, monkeypatch):
    app = _make_app(tmp_path)
    client = app.test_client()
    sent = {'email': [], 'sms': []}

    def _boom(to_email, subject, body):
        sent['email'].append((to_email, subject, body))
        raise RuntimeError('smtp down')

    def _sms(numbers, message):
        sent['sms'].append((numbers, message))
        return {'status': 'sent'}

    monkeypatch.setattr('abis.api.utils.notifications.send_email', _boom)
    monkeypatch.setattr('abis.api.utils.notifications.send_sms', _sms)

    with app.app_context():
        db.create_all()
        doc = _create(client, formFields={'residentEmail': 'juan@example.com', 'mobile': '09171234567'})

        resp = client.post(f"/api/documents/{doc['id']}/set_status", json={'status': 'accepted'})
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'accepted'

        db.session.expire_all()
        assert db.session.get(Document, doc['id']).status == 'accepted'

        tn = doc['trackingNumber']
        assert sent['email'] == [(
            'juan@example.com',
            f"Your document request {tn} status: accepted",
            f"Your request ({tn}) is now 'accepted'.",
        )]
        assert sent['sms'] == [(['09171234567'], f"Your request ({tn}) is now 'accepted'.")]


def test_patch_cannot_change_tracking_number(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.patch(f"/api/documents/{doc['id']}", json={'trackingNumber': 'ABIS-OTHER'})
        assert resp.status_code == 400

        resp = client.patch(f"/api/documents/{doc['id']}", json={'remarks': 'Bring a valid ID'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['remarks'] == 'Bring a valid ID'
        assert body['trackingNumber'] == doc['trackingNumber']


def test_lookup_by_tracking_number_and_delete(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.get(f"/api/documents/track/by-number/{doc['trackingNumber']}")
        assert resp.status_code == 200
        assert resp.get_json()['id'] == doc['id']

        assert client.get('/api/documents/track/by-number/ABIS-nope').status_code == 404

        assert client.delete(f"/api/documents/{doc['id']}").status_code == 200
        assert client.get(f"/api/documents/{doc['id']}").status_code == 404


def test_resident_name_falls_back_to_form_aliases(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = client.post('/api/documents', json={'formFields': {'fullName': 'Maria Clara'}})
        assert resp.status_code == 201
        assert resp.get_json()['residentName'] == 'Maria Clara'
        assert resp.get_json()['documentType'] == 'general'


def test_alias_resolution_takes_first_non_blank():
    data = {'email': '  ', 'contactEmail': 'a@example.com', 'residentEmail': 'b@example.com', 'contactPhone': '0917'}
    assert resolve_contact(data) == {'email': 'a@example.com', 'phone': '0917'}
    assert resolve_field({'name': 'Pedro'}, NAME_ALIASES) == 'Pedro'
    assert resolve_field(None, NAME_ALIASES) is None


def test_concurrent_certification_requests_are_all_counted(tmp_path):
    app = _make_app(
        tmp_path,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'abis.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={'poolclass': NullPool, 'connect_args': {'timeout': 30}},
    )
    requests_sent = 20

    with app.app_context():
        db.create_all()
        doc = _create(app.test_client())
        db.session.remove()

    def _certify(_):
        with app.test_client() as client:
            return client.post(f"/api/documents/{doc['id']}/certification").status_code

    with ThreadPoolExecutor(max_workers=8) as pool:
        statuses = list(pool.map(_certify, range(requests_sent)))

    assert statuses == [200] * requests_sent
    with app.app_context():
        assert db.session.get(Document, doc['id']).certification_count == requests_sent


def test_patch_rejects_non_text_values(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.patch(f"/api/documents/{doc['id']}", json={'docType': None})
        assert resp.status_code == 400
        assert 'docType' in resp.get_json()['error']

        resp = client.patch(f"/api/documents/{doc['id']}", json={'residentName': {'first': 'Juan'}})
        assert resp.status_code == 400

        resp = client.patch(f"/api/documents/{doc['id']}", json={'remarks': None, 'residentName': 'Juan D.'})
        assert resp.status_code == 200

        body = client.get(f"/api/documents/{doc['id']}").get_json()
        assert body['documentType'] == 'barangay_clearance'
        assert body['residentName'] == 'Juan D.'

        resp = client.post('/api/documents', json={'residentName': 'Pedro', 'documentType': 42})
        assert resp.status_code == 400


def test_rejected_payment_update_stores_no_proof(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.patch(
            f"/api/documents/{doc['id']}/payment",
            data={
                'paymentStatus': 'refunded',
                'paymentProof': (BytesIO(PDF_BYTES), 'receipt.pdf', 'application/pdf'),
            },
            content_type='multipart/form-data',
        )
        assert resp.status_code == 400
        assert not (tmp_path / 'uploads' / 'payments').exists()

        body = client.get(f"/api/documents/{doc['id']}").get_json()
        assert body['paymentStatus'] == 'unpaid'
        assert body['paymentProofUrl'] is None


def test_certificate_with_mislabelled_content_is_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        doc = _create(client)

        resp = client.post(
            f"/api/documents/{doc['id']}/certificate",
            data={'certificate': (BytesIO(b'just some notes, not a pdf\n'), 'clearance.pdf', 'application/pdf')},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 400
        assert client.get(f"/api/documents/{doc['id']}").get_json()['status'] == 'pending'
