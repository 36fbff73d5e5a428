"""Unit tests for HeaderSet."""

from har_capturer.capture.headers import HeaderSet
from har_capturer.models.har import HeaderEntry


class TestHeaderSetConstruction:
    """Tests for building header sets from CDP header objects."""

    def test_from_mapping_keeps_order(self):
        headers = HeaderSet.from_mapping({'Host': 'example.com', 'Accept': '*/*'})

        assert list(headers) == [('Host', 'example.com'), ('Accept', '*/*')]

    def test_newline_joined_values_are_split(self):
        """Chrome joins repeated headers such as Set-Cookie with newlines."""
        headers = HeaderSet.from_mapping({'Set-Cookie': 'a=1\nb=2'})

        assert list(headers) == [('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2')]
        assert headers.count('set-cookie') == 2

    def test_list_values_become_pairs(self):
        headers = HeaderSet.from_mapping({'Via': ['1.1 a', '1.1 b']})

        assert len(headers) == 2

    def test_empty_mapping(self):
        assert len(HeaderSet.from_mapping(None)) == 0
        assert len(HeaderSet.from_mapping({})) == 0


class TestHeaderSetMerge:
    """Tests for the case-insensitive merge rule."""

    def test_append_on_first_sighting(self):
        headers = HeaderSet.from_mapping({'Accept': '*/*'})

        assert headers.merge('testHeaderName', 'newValue') is True
        assert ('testHeaderName', 'newValue') in list(headers)

    def test_append_when_value_differs(self):
        """Same name with another value is appended verbatim, keeping both."""
        headers = HeaderSet.from_mapping({'TestHeaderName': 'oldvalue'})

        assert headers.merge('testheadername', 'newValue') is True
        assert headers.count('TESTHEADERNAME') == 2
        assert list(headers)[-1] == ('testheadername', 'newValue')

    def test_no_duplicate_for_same_name_and_value(self):
        headers = HeaderSet.from_mapping({'TestHeaderName': 'sameValue'})

        assert headers.merge('testheadername', 'sameValue') is False
        assert headers.count('testheadername') == 1

    def test_value_comparison_is_case_sensitive(self):
        headers = HeaderSet.from_mapping({'X-Mode': 'Fast'})

        assert headers.merge('x-mode', 'fast') is True

    def test_merge_is_idempotent(self):
        headers = HeaderSet.from_mapping({'Accept': '*/*'})
        extra = {'Cookie': 'a=1', 'accept': '*/*'}

        assert headers.merge_all(extra) == 1
        assert headers.merge_all(extra) == 0
        assert len(headers) == 2


class TestHeaderSetAccessors:
    """Tests for lookups and serialization."""

    def test_get_is_case_insensitive(self):
        headers = HeaderSet.from_mapping({'Content-Length': '42'})

        assert headers.get('content-length') == '42'
        assert headers.get('missing', 'default') == 'default'

    def test_raw_size(self):
        headers = HeaderSet([('Host', 'a')])

        # "GET / HTTP/1.1\r\nHost: a\r\n\r\n"
        assert headers.raw_size('GET / HTTP/1.1') == 27

    def test_to_har(self):
        headers = HeaderSet([('Host', 'a')])

        assert headers.to_har() == [HeaderEntry(name='Host', value='a')]

