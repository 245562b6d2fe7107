from __future__ import annotations

import os
from io import BytesIO
from urllib.parse import urlparse

from PIL import Image
from sqlalchemy.exc import OperationalError

from abis.api import db
from abis.api.app import create_app
from abis.api.config import Config
from abis.api.models.blotter import Blotter
from abis.api.utils import storage_handler
from abis.api.utils.storage_handler import StorageError


MIB = 1024 * 1024


class BlotterTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    RATELIMIT_ENABLED = False
    ADMIN_AUTH_MODE = 'disabled'
    ADMIN_API_KEY = 'test-admin-key'
    SENDGRID_API_KEY = ''
    SMTP_SERVER = ''
    SMS_PROVIDER = 'disabled'
    SUPABASE_URL = ''
    SUPABASE_KEY = ''
    SUPABASE_SERVICE_KEY = ''


def _make_app(tmp_path, **overrides):
    attrs = {'UPLOAD_FOLDER': tmp_path / 'uploads'}
    attrs.update(overrides)
    config = type('BlotterCaseConfig', (BlotterTestConfig,), attrs)
    return create_app(config)


def _png_bytes(width=40, height=30, noise=False) -> bytes:
    if noise:
        img = Image.frombytes('RGB', (width, height), os.urandom(width * height * 3))
    else:
        img = Image.new('RGB', (width, height), color=(200, 30, 30))
    buf = BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


def _file(data: bytes, name: str, mimetype: str):
    return (BytesIO(data), name, mimetype)


def _create(client, files=None, **fields):
    data = {
        'title': 'Stolen bicycle',
        'description': 'Bicycle taken from the covered court around 9pm.',
        'reporterName': 'Ana Santos',
        'reporterContact': 'ana@example.com',
    }
    data.update(fields)
    if files:
        data['attachments'] = files
    return client.post('/api/blotter', data=data, content_type='multipart/form-data')


def test_public_view_is_redacted(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = _create(client, files=[_file(_png_bytes(), 'scene.png', 'image/png')])
        assert resp.status_code == 201
        created = resp.get_json()
        assert len(created['publicToken']) == 20
        assert created['showReporter'] is False
        assert created['status'] == 'pending'

        resp = client.get(f"/api/blotter/{created['id']}")
        assert resp.status_code == 200
        public = resp.get_json()
        assert 'reporterContact' not in public
        assert 'reporterName' not in public
        assert 'publicToken' not in public
        assert public['shortDescription'] == created['description'][:400]
        assert public['attachmentsCount'] == 1
        assert set(public['attachments'][0]) == {'url', 'originalname', 'format', 'public_id'}


def test_show_reporter_exposes_reporter_publicly(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        created = _create(client, showReporter='yes').get_json()
        assert created['showReporter'] is True

        public = client.get(f"/api/blotter/{created['id']}").get_json()
        assert public['reporterName'] == 'Ana Santos'
        assert public['reporterContact'] == 'ana@example.com'


def test_token_holder_sees_full_record(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        created = _create(client, files=[_file(_png_bytes(), 'scene.png', 'image/png')]).get_json()

        by_query = client.get(f"/api/blotter/{created['id']}?token={created['publicToken']}").get_json()
        by_header = client.get(
            f"/api/blotter/{created['id']}", headers={'X-Public-Token': created['publicToken']}
        ).get_json()

        for full in (by_query, by_header):
            assert full['reporterContact'] == 'ana@example.com'
            assert full['publicToken'] == created['publicToken']
            att = full['attachments'][0]
            assert att['width'] == 40
            assert att['height'] == 30
            assert att['mimetype'] == 'image/png'
            assert att['filename'].startswith('blotter/')

        wrong = client.get(f"/api/blotter/{created['id']}?token=deadbeef").get_json()
        assert 'reporterContact' not in wrong


def test_admin_flag_and_header_return_full_record(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        created = _create(client).get_json()

        assert 'reporterContact' in client.get(f"/api/blotter/{created['id']}?admin=1").get_json()
        assert 'reporterContact' in client.get(
            f"/api/blotter/{created['id']}", headers={'X-Admin-Key': 'test-admin-key'}
        ).get_json()


def test_oversized_jpg_is_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = _create(client, files=[_file(b'\xff\xd8\xff' + b'0' * (3 * MIB), 'big.jpg', 'image/jpeg')])
        assert resp.status_code == 400
        assert 'File too large' in resp.get_json()['error']
        assert Blotter.query.count() == 0


def test_gif_is_rejected_as_unsupported(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = _create(client, files=[_file(b'GIF89a' + b'0' * 100, 'anim.gif', 'image/gif')])
        assert resp.status_code == 400
        assert 'Unsupported file type' in resp.get_json()['error']
        assert Blotter.query.count() == 0


def test_one_mib_png_is_accepted_with_resolvable_url(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        payload = _png_bytes(600, 600, noise=True)
        assert MIB <= len(payload) < 2 * MIB

        resp = _create(client, files=[_file(payload, 'photo.png', 'image/png')])
        assert resp.status_code == 201
        attachments = resp.get_json()['attachments']
        assert len(attachments) == 1
        url = attachments[0]['url']
        assert url

        served = client.get(urlparse(url).path)
        assert served.status_code == 200
        assert served.data == payload


def test_too_many_attachments_are_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        files = [_file(_png_bytes(), f'p{i}.png', 'image/png') for i in range(4)]
        resp = _create(client, files=files)
        assert resp.status_code == 400
        assert Blotter.query.count() == 0


def test_title_and_description_are_required(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        assert _create(client, title='').status_code == 400
        assert _create(client, description='   ').status_code == 400
        assert Blotter.query.count() == 0


def test_failed_upload_stores_nothing(tmp_path, monkeypatch):
    app = _make_app(tmp_path)
    client = app.test_client()
    calls = {'store': 0, 'deleted': []}
    real_store = storage_handler._store_bytes

    def _flaky_store(data, category, safe_name, mimetype):
        calls['store'] += 1
        if calls['store'] == 2:
            raise StorageError('bucket unavailable')
        return real_store(data, category, safe_name, mimetype)

    def _record_delete(ref):
        calls['deleted'].append(ref)
        return True

    monkeypatch.setattr('abis.api.utils.storage_handler._store_bytes', _flaky_store)
    monkeypatch.setattr('abis.api.utils.storage_handler.delete_stored', _record_delete)

    with app.app_context():
        db.create_all()
        files = [_file(_png_bytes(), f'p{i}.png', 'image/png') for i in range(3)]
        resp = _create(client, files=files)
        assert resp.status_code == 500
        assert 'details' not in resp.get_json()
        assert Blotter.query.count() == 0
        assert calls['store'] == 2
        assert len(calls['deleted']) == 1
        assert calls['deleted'][0].startswith('blotter/')


def test_patch_appends_attachments_and_keeps_token(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        created = _create(client, files=[_file(_png_bytes(), 'first.png', 'image/png')]).get_json()

        resp = client.patch(
            f"/api/blotter/{created['id']}",
            data={'status': 'investigating', 'attachments': [_file(_png_bytes(), 'second.png', 'image/png')]},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['status'] == 'investigating'
        assert [a['originalname'] for a in body['attachments']] == ['first.png', 'second.png']
        assert body['publicToken'] == created['publicToken']

        resp = client.patch(f"/api/blotter/{created['id']}", json={'publicToken': 'f' * 20})
        assert resp.status_code == 400

        resp = client.patch(f"/api/blotter/{created['id']}", json={'status': 'archived'})
        assert resp.status_code == 400


def test_attachment_download_authorization(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        payload = _png_bytes()
        created = _create(client, files=[_file(payload, 'scene.png', 'image/png')]).get_json()
        stored_name = os.path.basename(created['attachments'][0]['filename'])
        url = f"/api/blotter/download/attachment/{stored_name}"

        assert client.get(url).status_code == 400
        assert client.get(f"{url}?blotterId={created['id']}").status_code == 403

        resp = client.get(f"{url}?blotterId={created['id']}&token={created['publicToken']}")
        assert resp.status_code == 200
        assert resp.data == payload

        resp = client.get(f"{url}?blotterId={created['id']}", headers={'X-Admin-Key': 'test-admin-key'})
        assert resp.status_code == 200

        missing = f"/api/blotter/download/attachment/nope.png?blotterId={created['id']}&token={created['publicToken']}"
        assert client.get(missing).status_code == 404

        client.patch(f"/api/blotter/{created['id']}", json={'status': 'published'})
        assert client.get(f"{url}?blotterId={created['id']}").status_code == 200


def test_blotter_certificate_keeps_status(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        created = _create(client).get_json()

        resp = client.post(
            f"/api/blotter/{created['id']}/certificate",
            data={'certificate': (BytesIO(b'%PDF-1.4\n%%EOF\n'), 'blotter-cert.pdf', 'application/pdf')},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['status'] == 'pending'
        assert body['certificateFileName'] == 'blotter-cert.pdf'

        resp = client.post(f"/api/blotter/{created['id']}/crime-record", json={'crimeRecordStatus': 'yes'})
        assert resp.get_json()['crimeRecordStatus'] == 'yes'

        resp = client.post(f"/api/blotter/{created['id']}/certification")
        assert resp.get_json()['certificationCount'] == 1

        resp = client.patch(f"/api/blotter/{created['id']}/payment", json={'paymentStatus': 'paid'})
        body = resp.get_json()
        assert body['paymentStatus'] == 'paid'
        assert body['paymentMethod'] == 'gcash'


def test_pending_list_only_has_pending_entries(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        first = _create(client, title='First').get_json()
        _create(client, title='Second', status='published')

        pending = client.get('/api/blotter/pending').get_json()
        assert [b['id'] for b in pending] == [first['id']]
        assert len(client.get('/api/blotter').get_json()) == 2

        assert client.delete(f"/api/blotter/{first['id']}").status_code == 200
        assert client.get(f"/api/blotter/{first['id']}").status_code == 404


def test_png_name_with_pdf_content_is_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()
    pdf = b'%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n'

    with app.app_context():
        db.create_all()
        resp = _create(client, files=[_file(pdf, 'photo.png', 'image/png')])
        assert resp.status_code == 400
        assert 'application/pdf' in resp.get_json()['error']
        assert Blotter.query.count() == 0
        assert not (tmp_path / 'uploads' / 'blotter').exists()


def test_upload_failure_message_reaches_caller(tmp_path, monkeypatch):
    app = _make_app(tmp_path, DEBUG=False)
    client = app.test_client()

    def _full_bucket(data, category, safe_name, mimetype):
        raise StorageError('bucket quota exceeded')

    monkeypatch.setattr('abis.api.utils.storage_handler._store_bytes', _full_bucket)

    with app.app_context():
        db.create_all()
        resp = _create(client, files=[_file(_png_bytes(), 'scene.png', 'image/png')])
        assert resp.status_code == 500
        body = resp.get_json()
        assert 'bucket quota exceeded' in body['error']
        assert 'details' not in body
        assert Blotter.query.count() == 0


def test_failed_save_discards_stored_attachments(tmp_path, monkeypatch):
    app = _make_app(tmp_path, DEBUG=False)
    client = app.test_client()

    def _locked_commit():
        raise OperationalError('INSERT INTO blotter', {}, Exception('database is locked'))

    with app.app_context():
        db.create_all()
        monkeypatch.setattr(db.session, 'commit', _locked_commit)
        resp = _create(client, files=[_file(_png_bytes(), 'scene.png', 'image/png')])
        monkeypatch.undo()

        assert resp.status_code == 500
        assert 'database is locked' in resp.get_json()['error']
        assert Blotter.query.count() == 0
        assert list((tmp_path / 'uploads' / 'blotter').iterdir()) == []


def test_non_string_title_is_rejected(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resp = client.post('/api/blotter', json={'title': 123, 'description': 'Noise complaint'})
        assert resp.status_code == 400
        assert 'title' in resp.get_json()['error']

        resp = client.post('/api/blotter', json={'title': 'Noise', 'description': ['loud', 'music']})
        assert resp.status_code == 400
        assert Blotter.query.count() == 0

        created = _create(client).get_json()
        resp = client.patch(f"/api/blotter/{created['id']}", json={'title': None})
        assert resp.status_code == 400
        assert client.get(f"/api/blotter/{created['id']}?admin=1").get_json()['title'] == 'Stolen bicycle'
