import json
import logging

from deal_redemption.logging_config import JSON_FORMAT, JsonFormatter


def test_json_lines_carry_extras():
    record = logging.LogRecord("deal_redemption.redemption", logging.INFO, __file__, 1, "Deal redeemed", None, None)
    record.deal_id = 7
    record.user_id = "user-u"

    line = json.loads(JsonFormatter(JSON_FORMAT).format(record))

    assert line["message"] == "Deal redeemed"
    assert line["levelname"] == "INFO"
    assert (line["deal_id"], line["user_id"]) == (7, "user-u")
