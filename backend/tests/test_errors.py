from botocore.exceptions import ClientError, EndpointConnectionError

from gateway.core.errors import StorageError, translate_storage_error


def test_client_error_fields_are_extracted():
    exc = ClientError(
        {
            "Error": {"Code": "NoSuchBucket", "Message": "The specified bucket does not exist"},
            "ResponseMetadata": {"HTTPStatusCode": 404, "RequestId": "17A2B3C4D5E6F"},
        },
        "CreateMultipartUpload",
    )

    error = translate_storage_error(exc)

    assert error.status == 404
    assert error.code == "NoSuchBucket"
    assert error.request_id == "17A2B3C4D5E6F"
    assert error.status_code == 500
    assert error.detail == (
        "Upload to MinIO failed: The specified bucket does not exist "
        "(status=404, code=NoSuchBucket, requestId=17A2B3C4D5E6F)"
    )


def test_request_id_falls_back_to_amz_header():
    exc = ClientError(
        {
            "Error": {"Code": "AccessDenied", "Message": "Access Denied."},
            "ResponseMetadata": {
                "HTTPStatusCode": 403,
                "HTTPHeaders": {"x-amz-request-id": "HDR-1"},
            },
        },
        "UploadPart",
    )

    assert translate_storage_error(exc).request_id == "HDR-1"


def test_empty_client_error_uses_fallbacks():
    error = translate_storage_error(ClientError({}, "UploadPart"))

    assert error.code == "UNKNOWN"
    assert error.status is None
    assert error.request_id is None
    assert error.detail.startswith("Upload to MinIO failed: ")


def test_botocore_error_uses_class_name_as_code():
    exc = EndpointConnectionError(endpoint_url="http://minio.local:9000/videos-bucket")

    error = translate_storage_error(exc)

    assert error.code == "EndpointConnectionError"
    assert "minio.local" in error.message
    assert error.detail.endswith("(code=EndpointConnectionError)")


def test_message_less_exception_reads_unknown():
    error = translate_storage_error(RuntimeError())

    assert error.message == "unknown error"
    assert error.code == "UNKNOWN"
    assert error.detail == "Upload to MinIO failed: unknown error"


def test_storage_error_passes_through():
    original = StorageError("already translated", code="SlowDown")
    assert translate_storage_error(original) is original
