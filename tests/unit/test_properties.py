"""
Unit tests for server.properties handling and hostname derivation.
"""
from worldhost.hostnames import into_valid_hostname, is_valid_hostname, world_hostname
from worldhost.properties import (
    create_properties,
    default_properties,
    parse_properties,
    pin_port,
)


class TestProperties:
    """Tests for properties parsing and writing."""

    def test_parse_skips_comments_and_blanks(self):
        text = "#Minecraft server properties\n\nmotd=Hello world\nserver-port=25565\n"
        assert parse_properties(text) == {'motd': 'Hello world', 'server-port': '25565'}

    def test_value_may_contain_equals(self):
        assert parse_properties("motd=a=b\n") == {'motd': 'a=b'}

    def test_create_keeps_order(self):
        text = create_properties({'b': '1', 'a': '2'})
        assert text == "b=1\na=2\n"

    def test_pin_port_sets_both_keys(self):
        """Both the game and query ports follow the allocated port."""
        pinned = pin_port({'server-port': '25565', 'motd': 'x'}, 25570)
        assert pinned['server-port'] == '25570'
        assert pinned['query.port'] == '25570'
        assert pinned['motd'] == 'x'

    def test_pin_port_does_not_mutate(self):
        original = {'server-port': '1'}
        pin_port(original, 2)
        assert original == {'server-port': '1'}

    def test_default_properties_bundled(self):
        properties = parse_properties(default_properties())
        assert 'server-port' in properties
        assert properties['enable-query'] == 'true'


class TestHostnames:
    """Tests for hostname derivation."""

    def test_lowercases_and_dashes_whitespace(self):
        assert into_valid_hostname("My Cool World") == "my-cool-world"

    def test_drops_invalid_characters(self):
        assert into_valid_hostname("Über_Server!") == "berserver"

    def test_is_valid_hostname(self):
        assert is_valid_hostname("survival-1")
        assert not is_valid_hostname("Survival")
        assert not is_valid_hostname("")

    def test_is_valid_hostname_label_rules(self):
        """Labels can't start or end with a dash or exceed 63 chars."""
        assert not is_valid_hostname("-smp")
        assert not is_valid_hostname("smp-")
        assert is_valid_hostname("a" * 63)
        assert not is_valid_hostname("a" * 64)

    def test_world_hostname_prefers_hostname(self, make_world):
        world = make_world(name="Survival", hostname="smp")
        assert world_hostname(world) == "smp"

    def test_world_hostname_falls_back_to_name(self, make_world):
        world = make_world(name="Creative Plot")
        assert world_hostname(world) == "creative-plot"

    def test_world_hostname_none_when_empty(self, make_world):
        """A world with nothing usable gets no route."""
        world = make_world(name="!!!")
        assert world_hostname(world) is None
