from quizvault.services.navigation import NavEntry, target_rank, validate_navigation_path

ENTRIES = [NavEntry("other", 1, None), NavEntry("aws", 1, None), NavEntry("azure", 1, None),
           NavEntry("saa-c03", 2, "aws"), NavEntry("dva-c02", 2, "aws")]


def test_empty_path_is_valid():
    assert validate_navigation_path([], ENTRIES) is None


def test_other_alone_is_valid_but_not_combined():
    assert validate_navigation_path(["other"], ENTRIES) is None
    assert validate_navigation_path(["aws", "other"], ENTRIES) is not None
    assert validate_navigation_path(["other", "aws"], ENTRIES) is not None


def test_single_keyword_must_be_rank_one():
    assert validate_navigation_path(["AWS"], ENTRIES) is None
    assert validate_navigation_path(["saa-c03"], ENTRIES) is not None
    assert validate_navigation_path(["gcp"], ENTRIES) is not None


def test_second_keyword_must_hang_under_first():
    assert validate_navigation_path(["aws", "saa-c03"], ENTRIES) is None
    assert validate_navigation_path(["azure", "saa-c03"], ENTRIES) is not None
    assert validate_navigation_path(["aws", "azure"], ENTRIES) is not None


def test_three_keywords_are_rejected():
    assert validate_navigation_path(["aws", "saa-c03", "dva-c02"], ENTRIES) is not None


def test_target_rank():
    assert target_rank([]) == 1
    assert target_rank(["aws"]) == 2
    assert target_rank(["aws", "saa-c03"]) is None
    assert target_rank(["other"]) is None
