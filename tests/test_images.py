"""Tests for kvminstall.images."""
from unittest.mock import MagicMock

import pytest
import requests

from kvminstall import images
from kvminstall.exceptions import ImageException, UnknownDistroException


def _session(chunks=(b'abc', b'def'), error=None):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = list(chunks)
    if error:
        response.raise_for_status.side_effect = error
    session = MagicMock()
    session.get.return_value = response
    return session


class TestLookup:
    @pytest.mark.parametrize('key', sorted(images.DISTROS))
    def test_every_distro_is_complete(self, key):
        distro = images.lookup(key)
        assert distro.key == key
        assert distro.image
        assert distro.os_variant
        assert distro.login_user
        assert distro.url.startswith('https://')
        assert distro.family in images.FAMILIES

    def test_unknown(self):
        with pytest.raises(UnknownDistroException) as excinfo:
            images.lookup('beos5')
        assert excinfo.value.exit_code == 2
        assert 'centos7' in str(excinfo.value)

    def test_custom(self, tmp_path):
        path = tmp_path / 'my.qcow2'
        path.write_bytes(b'x')
        distro = images.custom(str(path), 'tester')
        assert distro.os_variant == 'auto'
        assert distro.login_user == 'tester'
        assert distro.image == 'my.qcow2'

    def test_custom_missing(self, tmp_path):
        with pytest.raises(ImageException):
            images.custom(str(tmp_path / 'nope.qcow2'), 'tester')


class TestFetch:
    def test_cached_image_is_not_downloaded(self, imagedir):
        session = _session()
        path = images.fetch(images.lookup('centos7'), str(imagedir),
                            session=session)
        assert path == str(imagedir / 'CentOS-7-x86_64-GenericCloud.qcow2')
        session.get.assert_not_called()

    def test_download(self, tmp_path):
        session = _session()
        distro = images.lookup('debian12')
        path = images.fetch(distro, str(tmp_path / 'cache'), session=session)
        session.get.assert_called_once_with(
            f'{distro.url}/{distro.image}', stream=True, timeout=60)
        with open(path, 'rb') as reader:
            assert reader.read() == b'abcdef'
        assert [p.name for p in (tmp_path / 'cache').iterdir()] == [distro.image]

    def test_second_fetch_reuses_download(self, tmp_path):
        session = _session()
        distro = images.lookup('ubuntu2404')
        images.fetch(distro, str(tmp_path), session=session)
        images.fetch(distro, str(tmp_path), session=session)
        assert session.get.call_count == 1

    def test_failed_download_leaves_nothing_behind(self, tmp_path):
        session = _session(error=requests.HTTPError('404 Not Found'))
        with pytest.raises(ImageException):
            images.fetch(images.lookup('fedora40'), str(tmp_path),
                         session=session)
        assert list(tmp_path.iterdir()) == []


class TestImageFormat:
    @pytest.mark.parametrize('path, expected', [
        ('/d/example-5g.qcow2', 'qcow2'), ('data.RAW', 'raw'),
        ('win.vmdk', 'vmdk'), ('box.vdi', 'vdi')])
    def test_known_extensions(self, path, expected):
        assert images.image_format(path) == expected

    @pytest.mark.parametrize('path', ['disk.img', 'disk'])
    def test_unknown_extension(self, path):
        with pytest.raises(ImageException):
            images.image_format(path)
