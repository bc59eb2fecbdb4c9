"""
Tests for XMLTV schedule parsing.
"""
import pytest

from guide_engine.errors import MalformedSource
from guide_engine.services.xmltv_parser_service import parse_xmltv_async, parse_xmltv_text
from tests.helpers import SAMPLE_XMLTV, utc


LATIN1_XMLTV = (
    '<?xml version="1.0" encoding="ISO-8859-1"?>\n'
    '<tv>\n'
    '  <channel id="a"><display-name>Télé</display-name></channel>\n'
    '  <programme start="20240101180000" stop="20240101190000" channel="a"><title>Café</title></programme>\n'
    '</tv>'
)


class TestXMLTVParsing:
    """Test channel and programme block extraction."""

    def test_channels_in_declaration_order(self):
        channels = parse_xmltv_text(SAMPLE_XMLTV)
        assert [channel.id for channel in channels] == ["5", "7"]

    def test_display_name_defaults_to_id(self):
        channels = {channel.id: channel for channel in parse_xmltv_text(SAMPLE_XMLTV)}
        assert channels["5"].name == "Channel Five"
        assert channels["7"].name == "7"

    def test_programs_sorted_by_start(self):
        channel = parse_xmltv_text(SAMPLE_XMLTV)[0]
        assert [program.title for program in channel.programs] == ["News", "Movie"]
        assert channel.programs[0].start == utc(2024, 1, 1, 18, 0, 0)
        assert channel.programs[0].end == utc(2024, 1, 1, 19, 0, 0)

    def test_program_fields_and_defaults(self):
        news, movie = parse_xmltv_text(SAMPLE_XMLTV)[0].programs
        assert news.description == "Evening news"
        assert news.category is None
        assert movie.description == ""
        assert movie.category == "Film"

    def test_program_id_derived_from_channel_and_start(self):
        news = parse_xmltv_text(SAMPLE_XMLTV)[0].programs[0]
        assert news.id == "5-1704132000000"
        assert news.channel_id == "5"

    def test_skips_malformed_blocks(self):
        channel_seven = parse_xmltv_text(SAMPLE_XMLTV)[1]
        # Bad start, missing start and zero length are dropped; the untitled one survives
        assert len(channel_seven.programs) == 1
        assert channel_seven.programs[0].title == "Unknown"
        assert channel_seven.programs[0].start == utc(2024, 1, 1, 21, 0, 0)

    def test_discards_programs_of_unknown_channels(self):
        titles = [program.title for channel in parse_xmltv_text(SAMPLE_XMLTV) for program in channel.programs]
        assert "Ghost" not in titles

    def test_reparse_is_idempotent(self):
        assert parse_xmltv_text(SAMPLE_XMLTV) == parse_xmltv_text(SAMPLE_XMLTV)

    def test_sorted_for_any_source_order(self):
        xml = """<tv>
          <channel id="a"/>
          <programme start="20240101220000" stop="20240101230000" channel="a"><title>Late</title></programme>
          <programme start="20240101060000" stop="20240101070000" channel="a"><title>Early</title></programme>
          <programme start="20240101120000" stop="20240101130000" channel="a"><title>Noon</title></programme>
        </tv>"""
        channel = parse_xmltv_text(xml)[0]
        assert [program.title for program in channel.programs] == ["Early", "Noon", "Late"]
        starts = [program.start for program in channel.programs]
        assert starts == sorted(starts)

    def test_offsets_are_honored(self):
        xml = """<tv>
          <channel id="a"/>
          <programme start="20240101180000 +0100" stop="20240101190000 +0100" channel="a"><title>X</title></programme>
        </tv>"""
        program = parse_xmltv_text(xml)[0].programs[0]
        assert program.start == utc(2024, 1, 1, 17, 0, 0)

    def test_offsets_ignored_when_disabled(self):
        xml = """<tv>
          <channel id="a"/>
          <programme start="20240101180000 +0100" stop="20240101190000 +0100" channel="a"><title>X</title></programme>
        </tv>"""
        program = parse_xmltv_text(xml, honor_offset=False)[0].programs[0]
        assert program.start == utc(2024, 1, 1, 18, 0, 0)

    def test_entities_are_decoded(self):
        xml = """<tv>
          <channel id="a"><display-name>A &amp; B</display-name></channel>
          <programme start="20240101180000" stop="20240101190000" channel="a"><title>Tom &amp; Jerry</title></programme>
        </tv>"""
        channel = parse_xmltv_text(xml)[0]
        assert channel.name == "A & B"
        assert channel.programs[0].title == "Tom & Jerry"

    def test_channel_without_id_is_skipped(self):
        xml = """<tv>
          <channel><display-name>Nameless</display-name></channel>
          <channel id="b"/>
        </tv>"""
        assert [channel.id for channel in parse_xmltv_text(xml)] == ["b"]

    def test_duplicate_channel_declaration_keeps_first(self):
        xml = """<tv>
          <channel id="a"><display-name>First</display-name></channel>
          <channel id="a"><display-name>Second</display-name></channel>
          <programme start="20240101180000" stop="20240101190000" channel="a"><title>X</title></programme>
        </tv>"""
        channels = parse_xmltv_text(xml)
        assert len(channels) == 1
        assert channels[0].name == "First"
        assert len(channels[0].programs) == 1

    def test_channels_without_programs(self):
        channels = parse_xmltv_text('<tv><channel id="a"/></tv>')
        assert channels[0].programs == ()

    def test_all_blocks_invalid_yields_no_channels(self):
        xml = '<tv><programme start="x" stop="y" channel="a"/></tv>'
        assert parse_xmltv_text(xml) == []

    def test_byte_order_mark_is_ignored(self):
        channels = parse_xmltv_text("\ufeff" + SAMPLE_XMLTV)
        assert [channel.id for channel in channels] == ["5", "7"]

    def test_decoded_text_ignores_encoding_declaration(self):
        channel = parse_xmltv_text(LATIN1_XMLTV)[0]
        assert channel.name == "Télé"
        assert channel.programs[0].title == "Café"

    def test_bytes_follow_encoding_declaration(self):
        channel = parse_xmltv_text(LATIN1_XMLTV.encode("iso-8859-1"))[0]
        assert channel.name == "Télé"
        assert channel.programs[0].title == "Café"

    def test_utf8_bytes(self):
        channels = parse_xmltv_text(SAMPLE_XMLTV.encode("utf-8"))
        assert channels == parse_xmltv_text(SAMPLE_XMLTV)

    @pytest.mark.parametrize("text", ["", b"", "<tv></tv>", "just some text", '{"channels": []}'])
    def test_no_recognizable_blocks_is_malformed_source(self, text):
        with pytest.raises(MalformedSource):
            parse_xmltv_text(text)


class TestAsyncParsing:
    """Test executor-offloaded parsing."""

    @pytest.mark.asyncio
    async def test_parse_async_matches_sync(self):
        channels = await parse_xmltv_async(SAMPLE_XMLTV, parse_timeout_seconds=30)
        assert channels == parse_xmltv_text(SAMPLE_XMLTV)

    @pytest.mark.asyncio
    async def test_parse_async_without_timeout(self):
        channels = await parse_xmltv_async(SAMPLE_XMLTV, parse_timeout_seconds=0)
        assert len(channels) == 2

    @pytest.mark.asyncio
    async def test_parse_async_propagates_malformed_source(self):
        with pytest.raises(MalformedSource):
            await parse_xmltv_async("<tv/>")
