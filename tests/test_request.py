"""
Tests for bracket-notation decoding and request parameter access.
"""
from datatables_ssp.request import RequestParams, decode_brackets
from datatables_ssp.schemas import ActionRequest, DrawRequest


class TestDecodeBrackets:
    """DataTables bracket notation"""

    def test_nested_columns_and_order(self):
        """Test columns/order become lists of nested dicts"""
        decoded = decode_brackets([
            ("draw", "3"),
            ("columns[0][data]", "0"),
            ("columns[0][search][value]", "ali"),
            ("columns[1][data]", "1"),
            ("order[0][column]", "1"),
            ("order[0][dir]", "desc"),
            ("search[value]", "q"),
        ])
        assert decoded["draw"] == "3"
        assert decoded["columns"] == [
            {"data": "0", "search": {"value": "ali"}},
            {"data": "1"},
        ]
        assert decoded["order"] == [{"column": "1", "dir": "desc"}]
        assert decoded["search"] == {"value": "q"}

    def test_list_params_ordered_by_index(self):
        """Test list members are ordered numerically, not lexically"""
        decoded = decode_brackets([
            ("columns[10][data]", "b"),
            ("columns[2][data]", "a"),
        ])
        assert decoded["columns"] == [{"data": "a"}, {"data": "b"}]

    def test_data_keys_stay_mapping_keys(self):
        """Test primary keys under data are not turned into list positions"""
        decoded = decode_brackets([
            ("action", "edit"),
            ("data[5][name]", "Bob"),
            ("data[5][email]", "bob@example.com"),
        ])
        assert decoded["data"] == {"5": {"name": "Bob", "email": "bob@example.com"}}

    def test_empty_brackets_append(self):
        """Test name[] collects repeated values"""
        decoded = decode_brackets([("ids[]", "1"), ("ids[]", "2")])
        assert decoded["ids"] == ["1", "2"]


class TestRequestParams:
    """GET/POST-aware accessor"""

    def test_method_is_case_insensitive(self):
        """Test lower-case method names select the same parameter set"""
        lower_get = RequestParams("get", query={"draw": "1"}, body={"action": "create"})
        upper_get = RequestParams("GET", query={"draw": "1"}, body={"action": "create"})
        assert lower_get.get() == upper_get.get() == {"draw": "1"}

        lower_post = RequestParams("post", query={"draw": "1"}, body={"action": "create"})
        assert lower_post.get() == {"action": "create"}

    def test_named_lookup_prefers_query(self):
        """Test named lookups check the query string before the body"""
        params = RequestParams("POST", query={"draw": "1"}, body={"draw": "2", "action": "edit"})
        assert params.get("draw") == "1"
        assert params.get("action") == "edit"
        assert params.get("missing", "fallback") == "fallback"

    def test_from_mapping_decodes_brackets(self):
        """Test flat bracket mappings are decoded"""
        params = RequestParams.from_mapping({"draw": "1", "columns[0][data]": "name"})
        assert params.method == "GET"
        assert params.get("columns") == [{"data": "name"}]

    def test_from_mapping_post_goes_to_body(self):
        """Test non-GET mappings are stored as the body"""
        params = RequestParams.from_mapping({"action": "remove"}, method="post")
        assert params.query == {}
        assert params.get() == {"action": "remove"}


class TestRequestModels:
    """Validation of decoded requests"""

    def test_draw_request_coerces_strings(self):
        """Test form strings are coerced into typed fields"""
        request = DrawRequest.model_validate({
            "draw": "4",
            "start": "20",
            "length": "10",
            "columns": [{"data": 0, "searchable": "true", "orderable": "false", "search": {"value": None}}],
            "order": [{"column": "0", "dir": "DESC"}],
        })
        assert (request.draw, request.start, request.length) == (4, 20, 10)
        assert request.columns[0].data == "0"
        assert request.columns[0].orderable is False
        assert request.columns[0].search.value == ""
        assert request.order[0].direction == "desc"
        assert request.paged

    def test_unpaged_lengths(self):
        """Test -1 and blank lengths mean no paging"""
        assert not DrawRequest(draw=1, length=-1).paged
        assert not DrawRequest.model_validate({"draw": 1, "length": ""}).paged

    def test_action_rows(self):
        """Test create rows come in order and edit rows stay keyed"""
        listed = ActionRequest(action="create", data=[{"name": "a"}, {"name": "b"}])
        keyed = ActionRequest(action="edit", data={"7": {"name": "c"}})
        assert [r["name"] for r in listed.rows()] == ["a", "b"]
        assert keyed.keyed_rows() == {"7": {"name": "c"}}
