"""常量定义：HTTP 状态码与文件树相关的固定取值。"""

HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

# 软删除时追加到名称与物理文件名后的标记，如 notes.txt_deleted_1
DELETED_MARKER = "_deleted_"

# 上传时未携带文件名的兜底名称
DEFAULT_UPLOAD_NAME = "unnamed_file"

DOWNLOAD_URL_TEMPLATE = "{prefix}/files/{resource_id}/download/{storage_name}"
CIRCUIT_PREVIEW_URL_TEMPLATE = "{prefix}/files/{file_id}/preview"
DOC_HTML_URL_TEMPLATE = "{prefix}/files/{file_id}/html"

CIRCUIT_FILE_TYPE = "circ"
LEGACY_DOC_FILE_TYPE = "doc"

DATE_FORMAT = "%Y-%m-%d"
