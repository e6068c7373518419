from __future__ import annotations

from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import ConditionBase


def ddb_get(table: Any, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    resp = table.get_item(Key=key)
    return resp.get("Item")


def ddb_put(
    table: Any,
    item: Dict[str, Any],
    *,
    condition_expression: Optional[str] = None,
    values: Optional[Dict[str, Any]] = None,
) -> None:
    kwargs: Dict[str, Any] = {"Item": item}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if values:
        kwargs["ExpressionAttributeValues"] = values
    table.put_item(**kwargs)


def ddb_del(
    table: Any,
    key: Dict[str, Any],
    *,
    condition_expression: Optional[str] = None,
    values: Optional[Dict[str, Any]] = None,
) -> None:
    kwargs: Dict[str, Any] = {"Key": key}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if values:
        kwargs["ExpressionAttributeValues"] = values
    table.delete_item(**kwargs)


def ddb_set(
    table: Any,
    key: Dict[str, Any],
    fields: Dict[str, Any],
    *,
    condition_expression: Optional[str] = None,
    condition_values: Optional[Dict[str, Any]] = None,
    return_values: str = "NONE",
) -> Optional[Dict[str, Any]]:
    """``SET`` every field in ``fields``; names and values are aliased so reserved words are safe."""
    names: Dict[str, str] = {}
    values: Dict[str, Any] = dict(condition_values or {})
    sets: List[str] = []
    for i, (attr, value) in enumerate(fields.items(), start=1):
        names[f"#f{i}"] = attr
        values[f":f{i}"] = value
        sets.append(f"#f{i} = :f{i}")

    kwargs: Dict[str, Any] = {
        "Key": key,
        "UpdateExpression": "SET " + ", ".join(sets),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if return_values != "NONE":
        kwargs["ReturnValues"] = return_values
    resp = table.update_item(**kwargs)
    return (resp or {}).get("Attributes")


def ddb_query_all(
    table: Any,
    key_condition: ConditionBase,
    *,
    index_name: Optional[str] = None,
    ascending: bool = True,
) -> List[Dict[str, Any]]:
    kwargs: Dict[str, Any] = {"KeyConditionExpression": key_condition, "ScanIndexForward": ascending}
    if index_name:
        kwargs["IndexName"] = index_name

    items: List[Dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return items
        kwargs["ExclusiveStartKey"] = last
