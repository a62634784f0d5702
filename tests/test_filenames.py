import itertools

from filenames import RawImageFile, assign_positions, group_by_product_key, parse_filename


def raw(file_id, filename, modified=None):
    return RawImageFile(file_id=file_id, filename=filename, modified_time=modified)


class TestParseFilename:
    def test_key_and_role(self):
        parsed = parse_filename("ABC123_Main.JPG")
        assert parsed.product_key == "ABC123"
        assert parsed.role == "main"

    def test_model_roles_preserved(self):
        assert parse_filename("ABC123_model2.png").role == "model2"
        assert parse_filename("ABC123_MODEL.png").role == "model"

    def test_role_is_reduced_to_alphanumerics(self):
        assert parse_filename("ABC123_front-left.jpg").role == "frontleft"

    def test_only_first_underscore_splits(self):
        parsed = parse_filename("ABC123_back_2.jpg")
        assert parsed.product_key == "ABC123"
        assert parsed.role == "back2"

    def test_unparseable_names(self):
        assert parse_filename("noseparator.jpg") is None
        assert parse_filename("_main.jpg") is None
        assert parse_filename("ABC123_main") is None
        assert parse_filename("ABC123_.jpg") is None
        assert parse_filename("") is None


class TestAssignPositions:
    def test_role_order_then_extras_alphabetically(self):
        files = [
            raw("5", "ABC_zoom.jpg"),
            raw("4", "ABC_model2.jpg"),
            raw("3", "ABC_detail.jpg"),
            raw("2", "ABC_close.jpg"),
            raw("1", "ABC_main.jpg"),
            raw("6", "ABC_model.jpg"),
        ]
        assets = assign_positions(files)
        assert [a.role for a in assets] == ["main", "close", "model", "model2", "detail", "zoom"]
        assert [a.position for a in assets] == [1, 2, 3, 4, 5, 6]

    def test_same_role_orders_by_modified_time(self):
        files = [
            raw("b", "ABC_main.jpg", "2024-05-02T10:00:00Z"),
            raw("a", "ABC_main.jpeg", "2024-05-01T10:00:00Z"),
        ]
        assert [a.file_id for a in assign_positions(files)] == ["a", "b"]

    def test_missing_timestamps_fall_back_to_filename(self):
        files = [raw("2", "ABC_main.png"), raw("1", "ABC_main.jpg")]
        assert [a.filename for a in assign_positions(files)] == ["ABC_main.jpg", "ABC_main.png"]

    def test_positions_do_not_depend_on_input_order(self):
        files = [
            raw("1", "ABC_main.jpg", "2024-01-02T00:00:00Z"),
            raw("2", "ABC_main.png"),
            raw("3", "ABC_main.gif", "2024-01-01T00:00:00Z"),
            raw("4", "ABC_close.jpg"),
            raw("5", "ABC_extra.jpg"),
        ]
        expected = [(a.file_id, a.position) for a in assign_positions(files)]
        for permutation in itertools.permutations(files):
            assert [(a.file_id, a.position) for a in assign_positions(permutation)] == expected

    def test_unparseable_files_are_dropped(self):
        assets = assign_positions([raw("1", "readme.txt"), raw("2", "ABC_main.jpg")])
        assert [a.file_id for a in assets] == ["2"]
        assert assets[0].position == 1

    def test_empty(self):
        assert assign_positions([]) == []


class TestGroupByProductKey:
    def test_groups_case_insensitively(self):
        groups = group_by_product_key([
            raw("1", "abc123_main.jpg"),
            raw("2", "ABC123_close.jpg"),
            raw("3", "XYZ_main.jpg"),
            raw("4", "notes.txt"),
        ])
        assert set(groups) == {"ABC123", "XYZ"}
        assert {f.file_id for f in groups["ABC123"]} == {"1", "2"}

    def test_empty_listing(self):
        assert group_by_product_key([]) == {}
