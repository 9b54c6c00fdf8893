import io
import os
import re
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import ClientDisconnected
from service_report import get_db
from service_report.errors import ForbiddenError, NotFoundError
from service_report.models.report import ReportAttachment
from service_report.services.attachments import AttachmentStore
from service_report.services.policy import Actor
from tests.test_utils_seed import ensure_assigned_report, ensure_done_report, ensure_report, nonexistent_report_id, report_service


def _store(upload_root):
    return AttachmentStore(get_db(), upload_root)


def _save(store, report_id, teknisi_id, name='manual.pdf', body=b'%PDF-1.4 demo', content_type='application/pdf'):
    return store.save_attachment(report_id, teknisi_id, name, content_type, len(body), io.BytesIO(body))


def test_save_attachment_writes_file_and_row(upload_root):
    report = ensure_assigned_report(upload_root, 3001, admin_id=601)
    att = _save(_store(upload_root), report.id, 3001)
    assert att.id is not None
    assert att.file_name == 'manual.pdf'
    assert att.content_type == 'application/pdf'
    assert att.size == len(b'%PDF-1.4 demo')
    assert re.fullmatch(rf'attachments/{report.id}/manual-[a-z0-9]{{10}}\.pdf', att.file_path)
    with open(os.path.join(upload_root, att.file_path), 'rb') as fh:
        assert fh.read() == b'%PDF-1.4 demo'
    assert att.to_dict()['file_path'] == f'/uploads/{att.file_path}'
    reloaded = report_service(upload_root).get_by_id(report.id)
    assert [a.id for a in reloaded.attachments] == [att.id]


def test_save_attachment_measures_size_when_unknown(upload_root):
    report = ensure_assigned_report(upload_root, 3002, admin_id=602)
    att = _store(upload_root).save_attachment(report.id, 3002, 'notes.txt', None, None, io.BytesIO(b'12345'))
    assert att.size == 5
    assert att.content_type == 'application/octet-stream'


def test_traversal_name_stays_in_report_directory(upload_root):
    report = ensure_assigned_report(upload_root, 3003, admin_id=603)
    att = _save(_store(upload_root), report.id, 3003, name='../../etc/passwd', body=b'root:x:0:0')
    assert '..' not in att.file_name and '/' not in att.file_name
    stored_name = att.file_path.rsplit('/', 1)[1]
    assert '..' not in stored_name
    report_dir = os.path.join(os.path.abspath(upload_root), 'attachments', str(report.id))
    assert os.path.dirname(os.path.abspath(os.path.join(upload_root, att.file_path))) == report_dir


def test_same_name_never_collides(upload_root):
    report = ensure_assigned_report(upload_root, 3004, admin_id=604)
    store = _store(upload_root)
    paths = {_save(store, report.id, 3004, name='photo.jpg', body=b'x').file_path for _ in range(5)}
    assert len(paths) == 5


def test_save_attachment_scoping(upload_root):
    report = ensure_assigned_report(upload_root, 3005, admin_id=605)
    store = _store(upload_root)
    with pytest.raises(ForbiddenError):
        _save(store, report.id, 3006)
    with pytest.raises(NotFoundError):
        _save(store, nonexistent_report_id(), 3005)
    unassigned = ensure_report(upload_root, admin_id=605)
    with pytest.raises(ForbiddenError):
        _save(store, unassigned.id, 3005)


def test_save_attachment_refused_once_done(upload_root):
    report = ensure_done_report(upload_root, 3007, admin_id=606)
    with pytest.raises(ForbiddenError):
        _save(_store(upload_root), report.id, 3007)
    assert not os.path.exists(os.path.join(upload_root, 'attachments', str(report.id)))


def test_failed_insert_removes_written_file(upload_root, monkeypatch):
    report = ensure_assigned_report(upload_root, 3008, admin_id=607)
    session = get_db()
    store = AttachmentStore(session, upload_root)

    def boom():
        raise OperationalError('INSERT', {}, Exception('disk full'))

    monkeypatch.setattr(session, 'commit', boom)
    with pytest.raises(OperationalError):
        _save(store, report.id, 3008)
    monkeypatch.undo()

    report_dir = os.path.join(upload_root, 'attachments', str(report.id))
    assert not os.path.isdir(report_dir) or os.listdir(report_dir) == []
    rows = session.execute(select(ReportAttachment).where(ReportAttachment.report_id == report.id)).scalars().all()
    assert rows == []


def test_get_attachment_is_scoped_to_report(upload_root):
    report = ensure_assigned_report(upload_root, 3009, admin_id=608)
    other = ensure_assigned_report(upload_root, 3009, admin_id=608)
    store = _store(upload_root)
    att = _save(store, report.id, 3009)
    assert store.get_attachment(report.id, att.id).id == att.id
    with pytest.raises(NotFoundError):
        store.get_attachment(other.id, att.id)
    with pytest.raises(NotFoundError):
        store.get_attachment(report.id, att.id + 10000)


def test_delete_attachment_removes_row_and_file(upload_root):
    report = ensure_assigned_report(upload_root, 3010, admin_id=609)
    store = _store(upload_root)
    att = _save(store, report.id, 3010)
    path = os.path.join(upload_root, att.file_path)
    att_id = att.id
    store.delete_attachment(report.id, 3010, att_id)
    assert not os.path.exists(path)
    with pytest.raises(NotFoundError):
        store.get_attachment(report.id, att_id)


def test_delete_attachment_tolerates_missing_file(upload_root):
    report = ensure_assigned_report(upload_root, 3011, admin_id=610)
    store = _store(upload_root)
    att = _save(store, report.id, 3011)
    os.remove(os.path.join(upload_root, att.file_path))
    att_id = att.id
    store.delete_attachment(report.id, 3011, att_id)
    with pytest.raises(NotFoundError):
        store.get_attachment(report.id, att_id)


def test_delete_attachment_forbidden_when_done(upload_root):
    report = ensure_assigned_report(upload_root, 3012, admin_id=611)
    store = _store(upload_root)
    att = _save(store, report.id, 3012)
    report_service(upload_root).update_progress(report.id, 3012, 'done', 'finished', 'all done')
    with pytest.raises(ForbiddenError):
        store.delete_attachment(report.id, 3012, att.id)
    assert os.path.exists(os.path.join(upload_root, att.file_path))
    assert store.get_attachment(report.id, att.id).id == att.id


def test_delete_attachment_scoping(upload_root):
    report = ensure_assigned_report(upload_root, 3013, admin_id=612)
    store = _store(upload_root)
    att = _save(store, report.id, 3013)
    with pytest.raises(ForbiddenError):
        store.delete_attachment(report.id, 3014, att.id)
    with pytest.raises(NotFoundError):
        store.delete_attachment(report.id, 3013, att.id + 10000)


def test_open_attachment_access(upload_root):
    report = ensure_assigned_report(upload_root, 3015, admin_id=613)
    store = _store(upload_root)
    att = _save(store, report.id, 3015, name='wiring.png', body=b'png')
    download = store.open_attachment(report.id, att.id, Actor(3015, 'TEKNISI'))
    assert download.download_name == 'wiring.png'
    assert os.path.isfile(download.path)
    assert store.open_attachment(report.id, att.id, Actor(1, 'ADMIN')).path == download.path
    with pytest.raises(ForbiddenError):
        store.open_attachment(report.id, att.id, Actor(3016, 'TEKNISI'))


def test_failed_delete_commit_keeps_row_and_file(upload_root, monkeypatch):
    report = ensure_assigned_report(upload_root, 3017, admin_id=614)
    session = get_db()
    store = AttachmentStore(session, upload_root)
    att = _save(store, report.id, 3017)
    path = os.path.join(upload_root, att.file_path)
    att_id = att.id

    def boom():
        raise OperationalError('DELETE', {}, Exception('database is locked'))

    monkeypatch.setattr(session, 'commit', boom)
    with pytest.raises(OperationalError):
        store.delete_attachment(report.id, 3017, att_id)
    monkeypatch.undo()

    assert store.get_attachment(report.id, att_id).id == att_id
    assert os.path.exists(path)


def test_aborted_upload_leaves_no_partial_file(upload_root):
    report = ensure_assigned_report(upload_root, 3018, admin_id=615)

    class DroppedStream(io.RawIOBase):
        def __init__(self):
            self.calls = 0

        def readable(self):
            return True

        def read(self, size=-1):
            self.calls += 1
            if self.calls == 1:
                return b'partial chunk'
            raise ClientDisconnected()

    with pytest.raises(ClientDisconnected):
        _store(upload_root).save_attachment(report.id, 3018, 'video.mp4', 'video/mp4', None, DroppedStream())

    report_dir = os.path.join(upload_root, 'attachments', str(report.id))
    assert not os.path.isdir(report_dir) or os.listdir(report_dir) == []
    rows = get_db().execute(select(ReportAttachment).where(ReportAttachment.report_id == report.id)).scalars().all()
    assert rows == []
