DEFAULT_RUNTIME = "python3.12"
DEFAULT_ARCHITECTURE = "x86_64"
DEFAULT_MEMORY = 128
DEFAULT_TIMEOUT = 60
# Lambda hard limits
MAX_TIMEOUT = 900
MIN_MEMORY = 128
MAX_MEMORY = 10240
LAMBDA_EXCLUDED_FILES = [".DS_Store"]  # exact file matches
LAMBDA_EXCLUDED_DIRS = ["__pycache__"]
LAMBDA_EXCLUDED_EXTENSIONS = [".pyc"]
LAMBDA_BASIC_EXECUTION_ROLE = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
