from __future__ import annotations

import pytest

from logstore.credentials import StaticCredentials, read_properties, resolve_credentials
from logstore.exceptions import ConfigurationError
from logstore.settings import StorageSettings


def _settings(**overrides):
    return StorageSettings.parse({"bucket": "testBucket", **overrides})


def _properties(tmp_path, content: str):
    path = tmp_path / "test-credentials.properties"
    path.write_text(content, encoding="utf-8")
    return path


def test_default_chain_when_nothing_configured():
    assert resolve_credentials(_settings()) is None


def test_explicit_keys():
    credentials = resolve_credentials(_settings(access_key_id="blah", secret_access_key="blah2"))
    assert credentials == StaticCredentials("blah", "blah2")


@pytest.mark.parametrize(
    "overrides",
    [{"secret_access_key": "blah"}, {"access_key_id": "blah"}],
)
def test_half_configured_keys(overrides):
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_credentials(_settings(**overrides))
    message = str(excinfo.value)
    assert "must both be configured" in message
    assert "access_key_id" in message
    assert "secret_access_key" in message


def test_credentials_file_does_not_exist():
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_credentials(_settings(credentials_file="/blah/file/does/not/exist"))
    assert "Credentials file does not exist or cannot be read" in str(excinfo.value)


@pytest.mark.parametrize(
    "content",
    [
        "#test\na=b\n",
        "#test\na=b\naccessKey=c\n",
        "#test\na=b\nsecretKey=c\n",
    ],
)
def test_credentials_file_missing_properties(tmp_path, content):
    path = _properties(tmp_path, content)
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_credentials(_settings(credentials_file=str(path)))
    assert "doesn't contain the expected properties 'accessKey' and 'secretKey'." in str(excinfo.value)


def test_credentials_file(tmp_path):
    path = _properties(tmp_path, "#test\n#Tue Jun 11 13:59:00 PDT 2013\naccessKey=b\nsecretKey=c\n")

    assert resolve_credentials(_settings(credentials_file=str(path))) == StaticCredentials("b", "c")


def test_explicit_keys_win_over_file(tmp_path):
    path = _properties(tmp_path, "accessKey=file\nsecretKey=file\n")

    credentials = resolve_credentials(
        _settings(access_key_id="key", secret_access_key="secret", credentials_file=str(path))
    )

    assert credentials == StaticCredentials("key", "secret")


def test_read_properties_formats(tmp_path):
    path = _properties(
        tmp_path,
        "# comment\n"
        "! another comment\n"
        "\n"
        "accessKey = AKIA123\n"
        "secretKey: abc/def+ghi=\n"
        "flag\n",
    )

    assert read_properties(path) == {
        "accessKey": "AKIA123",
        "secretKey": "abc/def+ghi=",
        "flag": "",
    }


def test_secret_is_not_in_repr():
    assert "hunter2" not in repr(StaticCredentials("key", "hunter2"))


def test_read_properties_whitespace_separator(tmp_path):
    path = _properties(tmp_path, "accessKey AKIA123\n\tsecretKey\t\tabc\n")

    assert read_properties(path) == {"accessKey": "AKIA123", "secretKey": "abc"}


def test_read_properties_continuation_lines(tmp_path):
    path = _properties(
        tmp_path,
        "secretKey = abc\\\n"
        "            def\\\n"
        "   ghi\n"
        "accessKey=key\\\\\n"
        "other=x\n",
    )

    assert read_properties(path) == {"secretKey": "abcdefghi", "accessKey": "key\\", "other": "x"}


def test_read_properties_escapes(tmp_path):
    path = _properties(
        tmp_path,
        "path\\:with\\=separators\\ and\\ spaces = value\n"
        "tabbed=a\\tb\\nc\n"
        "unicode=caf\\u00e9\n"
        "plain=\\q\n",
    )

    assert read_properties(path) == {
        "path:with=separators and spaces": "value",
        "tabbed": "a\tb\nc",
        "unicode": "café",
        "plain": "q",
    }


def test_credentials_file_with_continued_secret(tmp_path):
    path = _properties(tmp_path, "accessKey AKIA123\nsecretKey=abc\\\n  def\n")

    assert resolve_credentials(_settings(credentials_file=str(path))) == StaticCredentials("AKIA123", "abcdef")


def test_credentials_file_with_malformed_escape(tmp_path):
    path = _properties(tmp_path, "accessKey=\\u12\nsecretKey=c\n")

    with pytest.raises(ConfigurationError, match="cannot be read"):
        resolve_credentials(_settings(credentials_file=str(path)))
