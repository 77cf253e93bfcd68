import io
from datetime import datetime, timezone
from pathlib import Path

import botocore.exceptions
import pytest

from nextcloud_restore import docker_utils, restore
from nextcloud_restore.config import Settings

MODIFIED = datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)


def _not_found(operation: str) -> botocore.exceptions.ClientError:
    return botocore.exceptions.ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


class FakePaginator:
    def __init__(self, s3):
        self.s3 = s3

    def paginate(self, Bucket, Prefix):
        if self.s3.list_error is not None:
            raise self.s3.list_error
        contents = [
            {"Key": key, "Size": len(body), "LastModified": self.s3.modified}
            for key, body in self.s3.objects.items()
            if key.startswith(Prefix)
        ]
        # two pages to exercise pagination
        half = len(contents) // 2
        yield {"Contents": contents[:half]}
        yield {"Contents": contents[half:]} if contents[half:] else {}


class FakeS3:
    """In-memory stand-in for a boto3 S3 client. Listing keeps insertion order."""

    def __init__(self, events, objects=None):
        self.events = events
        self.objects = dict(objects or {})
        self.modified = MODIFIED
        self.list_error = None
        self.fail_downloads = False

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def _body(self, key, operation):
        if self.fail_downloads or key not in self.objects:
            raise _not_found(operation)
        return self.objects[key]

    def head_object(self, Bucket, Key):
        return {"ContentLength": len(self._body(Key, "HeadObject"))}

    def download_fileobj(self, bucket, key, fileobj, Callback=None):
        body = self._body(key, "GetObject")
        self.events.append(("download", key))
        fileobj.write(body)
        if Callback:
            Callback(len(body))

    def download_file(self, bucket, key, filename, Callback=None):
        body = self._body(key, "GetObject")
        self.events.append(("download", key))
        Path(filename).write_bytes(body)
        if Callback:
            Callback(len(body))


class FakeDocker:
    """Records docker calls; `statuses` maps a command label to its exit status."""

    def __init__(self, events):
        self.events = events
        self.statuses = {}

    def docker_exec(self, container, command, user=None):
        label = " ".join(command)
        self.events.append(("exec", container, label, user))
        return self.statuses.get(label, 0)

    def docker_run(self, image, mounts, command):
        self.events.append(("run", image, tuple(mounts), command[-1]))
        return self.statuses.get("run", 0)

    def stream_sql_dump(self, dump_path, container, user, database):
        self.events.append(("sql", Path(dump_path).name, container, user, database))
        status = self.statuses.get("sql", 0)
        if isinstance(status, Exception):
            raise status
        return status


@pytest.fixture
def events():
    return []


@pytest.fixture
def s3(events):
    return FakeS3(events)


@pytest.fixture
def docker(events, monkeypatch):
    fake = FakeDocker(events)
    monkeypatch.setattr(restore, "docker_exec", fake.docker_exec)
    monkeypatch.setattr(restore, "docker_run", fake.docker_run)
    monkeypatch.setattr(restore, "stream_sql_dump", fake.stream_sql_dump)
    return fake


@pytest.fixture
def settings(tmp_path):
    return Settings(
        bucket="nextcloud-backup",
        endpoint="https://account.r2.cloudflarestorage.com",
        backup_path=tmp_path / "backups",
        data_path=tmp_path / "data",
        postgres_user="ncuser",
        postgres_db="ncdb",
    )


class RecordingStdin(io.BytesIO):
    def close(self):
        self.captured = self.getvalue()
        super().close()


class FakePopen:
    instances = []
    returncode = 0

    def __init__(self, cmd, stdin=None):
        self.cmd = cmd
        self.stdin = RecordingStdin()
        self.returncode = FakePopen.returncode
        FakePopen.instances.append(self)

    def wait(self):
        return self.returncode

    def kill(self):
        self.returncode = -9


@pytest.fixture
def popen(monkeypatch):
    FakePopen.instances = []
    FakePopen.returncode = 0
    monkeypatch.setattr(docker_utils.subprocess, "Popen", FakePopen)
    return FakePopen
