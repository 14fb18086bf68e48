import json


def handler(event, context):
    claims = event["requestContext"]["authorizer"]["claims"]
    return {
        "statusCode": 200,
        "headers": {"content-type": "application/json"},
        "body": json.dumps({"message": f"Hello, {claims.get('email', claims['sub'])}!"}),
    }
