"""Tests for id generation."""

import re

from fragsync._ids import (
    IdCounters,
    IdGenerator,
    natural_key,
    sanitize_id,
    seventy_char_id,
)


class TestSanitize:
    def test_replaces_invalid_characters(self):
        assert sanitize_id("dir_my-app.bin 2_0") == "dir_my_app_bin_2_0"

    def test_keeps_valid_characters(self):
        assert sanitize_id("comp_Abc_09") == "comp_Abc_09"


class TestSeventyCharId:
    def test_short_id_unchanged(self):
        assert seventy_char_id("comp", "Group", 3) == "comp_Group_3"

    def test_long_main_is_shortened(self):
        result = seventy_char_id("comp", "x" * 100, 5)
        assert result.startswith("comp_x")
        assert result.endswith("_5")
        assert "x" * 66 not in result

    def test_sequence_number_never_truncated(self):
        result = seventy_char_id("file", "y" * 200, 123456)
        assert result.endswith("_123456")

    def test_result_is_sanitized(self):
        assert seventy_char_id("dir", "a.b", 0) == "dir_a_b_0"


class TestNaturalKey:
    def test_numbers_sort_by_value(self):
        ids = ["comp_G_10", "comp_G_2", "comp_G_1"]
        assert sorted(ids, key=natural_key) == ["comp_G_1", "comp_G_2", "comp_G_10"]

    def test_text_case_insensitive(self):
        assert natural_key("Comp_A") == natural_key("comp_a")


class TestLegacyIds:
    def test_directory_ids_fold_path(self):
        gen = IdGenerator(1, "G", base_directory_name="payload")
        assert gen.directory_id() == "dir_payload_0"
        assert gen.directory_id(("lib", "data")) == "dir_payload_lib_data_1"

    def test_directory_counter_uses_increment(self):
        counters = IdCounters(increment=10)
        gen = IdGenerator(1, "G", base_directory_name="p", counters=counters)
        gen.directory_id()
        gen.directory_id()
        assert counters.next_directory == 20

    def test_file_shares_component_number(self):
        gen = IdGenerator(1, "G", counters=IdCounters(next_component=7))
        assert gen.component_id() == "comp_G_7"
        assert gen.file_id() == "file_G_7"
        assert gen.counters.next_component == 8

    def test_finish_new_directory_leaves_gap(self):
        gen = IdGenerator(1, "G", counters=IdCounters(next_component=2, increment=5))
        gen.finish_new_directory()
        assert gen.counters.next_component == 6

    def test_group_id(self):
        assert IdGenerator(1, "My Files").group_id() == "group_My_Files"


class TestModernIds:
    def test_ids_use_upper_case_tokens(self, tokens):
        gen = IdGenerator(2, "G", token_factory=tokens)
        assert gen.directory_id() == "dir_" + "0" * 31 + "1"
        assert gen.component_id() == "comp_" + "0" * 31 + "2"
        assert gen.file_id() == "file_" + "0" * 31 + "3"

    def test_counters_untouched(self):
        gen = IdGenerator(2, "G")
        gen.component_id()
        gen.finish_new_directory()
        assert gen.counters == IdCounters()

    def test_random_ids_format(self):
        gen = IdGenerator(2, "G")
        assert re.fullmatch(r"comp_[0-9A-F]{32}", gen.component_id())
        assert gen.component_id() != gen.component_id()

    def test_install_guid_format(self):
        guid = IdGenerator(2, "G").install_guid()
        assert re.fullmatch(
            r"[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}", guid,
        )

    def test_group_id_is_group_name(self):
        assert IdGenerator(2, "App.Files").group_id() == "App_Files"
