from flask import request

from errors import BadRequest


def is_multipart():
    return request.mimetype == "multipart/form-data"


def request_data(list_fields=()):
    """Return the request body as a dict, from JSON or from submitted form fields.

    Form fields named in ``list_fields`` keep every submitted value.
    """
    if is_multipart() or request.mimetype == "application/x-www-form-urlencoded":
        data = {}
        for key in request.form.keys():
            if key in list_fields:
                data[key] = request.form.getlist(key)
            else:
                value = request.form.get(key)
                if value != "":
                    data[key] = value
        return data

    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BadRequest("JSON object required")
    return payload


def changed_fields(data, clearable=()):
    """Drop fields a partial update leaves as they are.

    Empty values are skipped unless the field is named in ``clearable``, where an
    explicit empty string clears the stored value. Form submissions never clear
    anything since request_data already drops their empty fields.
    """
    return {
        key: value
        for key, value in data.items()
        if value is not None and (value != "" or key in clearable)
    }
