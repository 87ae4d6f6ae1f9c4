from prod_automation.stat_output import StatDetails, extract_bracket_contents, mode_from_stat, parse_stat_output

STAT_TEXT = """  File: somefile.zip
  Size: 71231369  \tBlocks: 139128     IO Block: 4096   regular file
Device: 10303h/66307d\tInode: 6704924     Links: 1
Access: (0664/-rw-rw-r--)  Uid: ( 1000/   peter)   Gid: ( 1000/   peter)
Access: 2021-10-09 17:35:06.226416470 +1300
Modify: 2021-10-09 17:35:07.982410843 +1300
Change: 2021-10-09 17:35:07.982410843 +1300
 Birth: -
"""


def test_parse_canonical_output():
    details = parse_stat_output(STAT_TEXT)

    assert details == StatDetails(permissions="664", owner="peter", group="peter", file_size=71231369)
    assert mode_from_stat(details) == 0o664


def test_bracket_extraction():
    assert extract_bracket_contents("a (x) b (y z)") == ["x", "y z"]
    assert extract_bracket_contents("a (x b") is None
    assert extract_bracket_contents("no brackets") is None


def test_unparseable_output_falls_back_to_default_mode():
    assert parse_stat_output("stat: cannot stat 'x': No such file or directory") is None
    assert parse_stat_output("Access: (0644/-rw-r--r--) Uid: ( 0/ root)") is None
    assert mode_from_stat(None) == 0o644
    assert mode_from_stat(None, default=0o600) == 0o600
