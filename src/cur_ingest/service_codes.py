# ========================
# src/cur_ingest/service_codes.py
# ========================

"""
Service Code Normalization

CUR product codes come in many spellings: "AmazonEC2", "AWSLambda",
"OCBCloudFront", "EC2-Instance", savings plan codes, marketplace product ids.
CodeNormalizer maps each of them to a canonical service name and a broad
category (vm, container, function, storage, database, application).
"""

import logging
import re
from typing import Dict, NamedTuple, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class ServiceIdentity(NamedTuple):
    """Canonical service name and category for a product code."""
    name: str
    category: str

    @property
    def is_tax(self) -> bool:
        return self.category == TAX_CATEGORY


TAX_CATEGORY = 'tax'
TAX_SERVICE = ServiceIdentity('TAX', TAX_CATEGORY)
MARKETPLACE_SERVICE = 'AWS Marketplace'
DEFAULT_CATEGORY = 'application'

VENDOR_PREFIXES = ('AMAZON', 'AWS')
INTERMEDIARY_PREFIX = 'OCB'

MARKETPLACE_CODE_PATTERN = re.compile(r'^[A-Z0-9]{20,}$')

# Curated product code -> canonical service name. Keys are upper-case.
# None marks the tax sentinel.
PRODUCT_CODE_TO_SERVICE: Dict[str, Optional[str]] = {
    # Compute
    'AMAZONEC2': 'EC2', 'EC2': 'EC2', 'EC2-INSTANCE': 'EC2',
    'AMAZONECS': 'ECS', 'ECS': 'ECS',
    'AMAZONEKS': 'EKS', 'EKS': 'EKS',
    'AWSLAMBDA': 'Lambda', 'LAMBDA': 'Lambda',
    'AMAZONELASTICBEANSTALK': 'Elastic Beanstalk', 'ELASTICBEANSTALK': 'Elastic Beanstalk',
    'AMAZONFARGATE': 'Fargate', 'FARGATE': 'Fargate',
    'AMAZONBATCH': 'Batch', 'BATCH': 'Batch',
    'AMAZONECR': 'ECR', 'ECR': 'ECR',
    'AMAZONELASTICCONTAINERREGISTRY': 'ECR', 'ELASTICCONTAINERREGISTRY': 'ECR',
    'AMAZONLIGHTSAIL': 'Lightsail', 'LIGHTSAIL': 'Lightsail',
    'AMAZONOUTPOSTS': 'Outposts', 'OUTPOSTS': 'Outposts',
    'AMAZONWORKSPACES': 'WorkSpaces', 'WORKSPACES': 'WorkSpaces',
    'AMAZONWORKSPACESWEB': 'WorkSpaces Web', 'WORKSPACESWEB': 'WorkSpaces Web',
    'AMAZONAPPSTREAM': 'AppStream', 'APPSTREAM': 'AppStream',
    'AMAZONNIMBLESTUDIO': 'Nimble Studio', 'NIMBLESTUDIO': 'Nimble Studio',
    'AMAZONGAMELIFT': 'GameLift', 'GAMELIFT': 'GameLift',
    'AMAZONROBOMAKER': 'RoboMaker', 'ROBOMAKER': 'RoboMaker',

    # Storage
    'AMAZONS3': 'S3', 'S3': 'S3', 'S3-STORAGE': 'S3',
    'AMAZONGLACIER': 'Glacier', 'GLACIER': 'Glacier',
    'AMAZONEFS': 'EFS', 'EFS': 'EFS',
    'AMAZONEBS': 'EBS', 'EBS': 'EBS',
    'AMAZONSTORAGEGATEWAY': 'Storage Gateway', 'STORAGEGATEWAY': 'Storage Gateway',
    'AMAZONFSX': 'FSx', 'FSX': 'FSx',
    'AMAZONFSXLUSTRE': 'FSx for Lustre', 'FSXLUSTRE': 'FSx for Lustre',
    'AMAZONFSXWINDOWSFILESERVER': 'FSx for Windows File Server',
    'FSXWINDOWSFILESERVER': 'FSx for Windows File Server',
    'AMAZONFSXNETAPPONTAP': 'FSx for NetApp ONTAP', 'FSXNETAPPONTAP': 'FSx for NetApp ONTAP',
    'AMAZONFSXOPENZFS': 'FSx for OpenZFS', 'FSXOPENZFS': 'FSx for OpenZFS',
    'AMAZONBACKUP': 'AWS Backup', 'AWSBACKUP': 'AWS Backup', 'BACKUP': 'AWS Backup',

    # Database
    'AMAZONRDS': 'RDS', 'RDS': 'RDS',
    'AMAZONRDS-MYSQL': 'RDS (MySQL)', 'AMAZONRDS-MARIADB': 'RDS (MySQL)',
    'AMAZONRDS-POSTGRESQL': 'RDS (PostgreSQL)',
    'AMAZONRDS-SQLSERVER': 'RDS (SQL Server)',
    'AMAZONRDS-ORACLE': 'RDS (Oracle)',
    'AMAZONAURORA': 'Aurora', 'AURORA': 'Aurora',
    'AMAZONDYNAMODB': 'DynamoDB', 'DYNAMODB': 'DynamoDB',
    'AMAZONELASTICACHE': 'ElastiCache (Redis)', 'ELASTICACHE': 'ElastiCache (Redis)',
    'AMAZONELASTICACHE-REDIS': 'ElastiCache (Redis)',
    'AMAZONELASTICACHE-MEMCACHED': 'ElastiCache (Memcached)',
    'AMAZONREDSHIFT': 'Redshift', 'REDSHIFT': 'Redshift',
    'AMAZONNEPTUNE': 'Neptune', 'NEPTUNE': 'Neptune',
    'AMAZONDOCUMENTDB': 'DocumentDB', 'DOCUMENTDB': 'DocumentDB',
    'AMAZONTIMESTREAM': 'Timestream', 'TIMESTREAM': 'Timestream',
    'AMAZONQLDB': 'QLDB', 'QLDB': 'QLDB',
    'AMAZONKEYSPACES': 'Keyspaces', 'KEYSPACES': 'Keyspaces',
    'AMAZONMCS': 'Keyspaces',

    # Networking
    'AMAZONVPC': 'VPC', 'VPC': 'VPC',
    'AMAZONCLOUDFRONT': 'CloudFront', 'CLOUDFRONT': 'CloudFront',
    'AMAZONCLOUDFRONT-ORIGINSHIELD': 'CloudFront', 'AMAZONCLOUDFRONT-EDGE': 'CloudFront',
    'AMAZONROUTE53': 'Route 53', 'ROUTE53': 'Route 53', 'ROUTE 53': 'Route 53',
    'AMAZONAPIGATEWAY': 'API Gateway', 'APIGATEWAY': 'API Gateway',
    'AMAZONDIRECTCONNECT': 'Direct Connect', 'DIRECTCONNECT': 'Direct Connect', 'AWSDIRECTCONNECT': 'Direct Connect',
    'AMAZONVPN': 'VPN', 'VPN': 'VPN',
    'AMAZONTRANSITGATEWAY': 'Transit Gateway', 'TRANSITGATEWAY': 'Transit Gateway',
    'AMAZONPRIVATELINK': 'PrivateLink', 'PRIVATELINK': 'PrivateLink',
    'AMAZONELASTICLOADBALANCING': 'ALB/NLB', 'ELASTICLOADBALANCING': 'ALB/NLB',
    'AWSELB': 'ALB/NLB', 'ELB': 'ALB/NLB',
    'AMAZONGLOBALACCELERATOR': 'Global Accelerator', 'GLOBALACCELERATOR': 'Global Accelerator',
    'AWSGLOBALACCELERATOR': 'Global Accelerator',

    # Security & identity
    'AMAZONIAM': 'IAM', 'IAM': 'IAM',
    'AMAZONSECRETSMANAGER': 'Secrets Manager', 'SECRETSMANAGER': 'Secrets Manager',
    'AWSSECRETSMANAGER': 'Secrets Manager',
    'AMAZONKMS': 'KMS', 'KMS': 'KMS', 'AWSKMS': 'KMS',
    'AMAZONCLOUDHSM': 'CloudHSM', 'CLOUDHSM': 'CloudHSM',
    'AMAZONWAF': 'WAF', 'WAF': 'WAF', 'AWSWAF': 'WAF',
    'AMAZONSHIELD': 'Shield', 'SHIELD': 'Shield', 'AWSSHIELD': 'Shield',
    'AMAZONGUARDDUTY': 'GuardDuty', 'GUARDDUTY': 'GuardDuty',
    'AMAZONINSPECTOR': 'Inspector', 'AMAZONINSPECTORV2': 'Inspector', 'INSPECTOR': 'Inspector',
    'AMAZONMACIE': 'Macie', 'MACIE': 'Macie',
    'AMAZONCERTIFICATEMANAGER': 'Certificate Manager', 'CERTIFICATEMANAGER': 'Certificate Manager',
    'AWSCERTIFICATEMANAGER': 'Certificate Manager',
    'AMAZONCOGNITO': 'Cognito', 'COGNITO': 'Cognito',
    'AMAZONDETECTIVE': 'Detective', 'DETECTIVE': 'Detective',
    'AMAZONFIREWALLMANAGER': 'Firewall Manager', 'FIREWALLMANAGER': 'Firewall Manager',
    'AWSSECURITYHUB': 'Security Hub', 'SECURITYHUB': 'Security Hub',

    # Analytics
    'AMAZONEMR': 'EMR', 'EMR': 'EMR',
    'AMAZONELASTICMAPREDUCE': 'EMR', 'ELASTICMAPREDUCE': 'EMR',
    'AMAZONKINESIS': 'Kinesis', 'KINESIS': 'Kinesis',
    'AMAZONKINESISFIREHOSE': 'Kinesis Firehose', 'KINESISFIREHOSE': 'Kinesis Firehose',
    'AMAZONKINESISANALYTICS': 'Kinesis Analytics', 'KINESISANALYTICS': 'Kinesis Analytics',
    'AMAZONKINESISVIDEO': 'Kinesis Video Streams', 'KINESISVIDEO': 'Kinesis Video Streams',
    'AMAZONATHENA': 'Athena', 'ATHENA': 'Athena',
    'AMAZONGLUE': 'Glue', 'GLUE': 'Glue', 'AWSGLUE': 'Glue',
    'AMAZONQUICKSIGHT': 'QuickSight', 'QUICKSIGHT': 'QuickSight',
    'AMAZONOPENSEARCH': 'OpenSearch', 'OPENSEARCH': 'OpenSearch',
    'AMAZONOPENSEARCHSERVICE': 'OpenSearch',
    'AMAZONELASTICSEARCH': 'OpenSearch', 'ELASTICSEARCH': 'OpenSearch',
    'AMAZONES': 'OpenSearch', 'ES': 'OpenSearch',
    'AMAZONDATAEXCHANGE': 'Data Exchange', 'DATAEXCHANGE': 'Data Exchange',
    'AMAZONMSK': 'MSK', 'MSK': 'MSK', 'AMAZONMANAGEDSTREAMINGFORAPACHEKAFKA': 'MSK',

    # Application integration
    'AMAZONSQS': 'SQS', 'AWSQUEUESERVICE': 'SQS', 'SQS': 'SQS',
    'AMAZONSNS': 'SNS', 'SNS': 'SNS',
    'AMAZONEVENTBRIDGE': 'EventBridge', 'EVENTBRIDGE': 'EventBridge', 'AWSEVENTS': 'EventBridge',
    'AMAZONCLOUDWATCHEVENTS': 'EventBridge', 'CLOUDWATCHEVENTS': 'EventBridge',
    'AMAZONSTEPFUNCTIONS': 'Step Functions', 'STEPFUNCTIONS': 'Step Functions',
    'AMAZONSTATES': 'Step Functions', 'AWSSTATES': 'Step Functions', 'STATES': 'Step Functions',
    'AMAZONAPPSYNC': 'AppSync', 'APPSYNC': 'AppSync', 'AWSAPPSYNC': 'AppSync',
    'AMAZONMQ': 'MQ', 'MQ': 'MQ',
    'AMAZONCONNECT': 'Connect', 'CONNECT': 'Connect',
    'AMAZONSES': 'SES', 'AMAZONSIMPLEEMAILSERVICE': 'SES', 'SES': 'SES',

    # Monitoring & management
    'AMAZONCLOUDWATCH': 'CloudWatch', 'CLOUDWATCH': 'CloudWatch',
    'AMAZONCLOUDWATCHLOGS': 'CloudWatch Logs', 'CLOUDWATCHLOGS': 'CloudWatch Logs',
    'AWSXRAY': 'X-Ray', 'XRAY': 'X-Ray', 'X-RAY': 'X-Ray',
    'AWSCLOUDTRAIL': 'CloudTrail', 'AMAZONCLOUDTRAIL': 'CloudTrail', 'CLOUDTRAIL': 'CloudTrail',
    'AWSSYSTEMSMANAGER': 'Systems Manager', 'AMAZONSYSTEMSMANAGER': 'Systems Manager',
    'SYSTEMSMANAGER': 'Systems Manager',
    'AWSCONFIG': 'Config', 'CONFIG': 'Config',
    'AWSCLOUDFORMATION': 'CloudFormation', 'CLOUDFORMATION': 'CloudFormation',
    'AWSSERVICECATALOG': 'Service Catalog', 'SERVICECATALOG': 'Service Catalog',
    'AWSCOSTEXPLORER': 'Cost Explorer', 'COSTEXPLORER': 'Cost Explorer',
    'AWSORGANIZATIONS': 'Organizations', 'ORGANIZATIONS': 'Organizations',
    'AWSCONTROLTOWER': 'Control Tower', 'CONTROLTOWER': 'Control Tower',
    'AWSLICENSEMANAGER': 'License Manager', 'LICENSEMANAGER': 'License Manager',

    # Machine learning
    'AMAZONSAGEMAKER': 'SageMaker', 'SAGEMAKER': 'SageMaker',
    'AMAZONREKOGNITION': 'Rekognition', 'REKOGNITION': 'Rekognition',
    'AMAZONCOMPREHEND': 'Comprehend', 'COMPREHEND': 'Comprehend',
    'AMAZONTRANSLATE': 'Translate', 'TRANSLATE': 'Translate',
    'AMAZONPOLLY': 'Polly', 'POLLY': 'Polly',
    'AMAZONLEX': 'Lex', 'LEX': 'Lex',
    'AMAZONTEXTRACT': 'Textract', 'TEXTRACT': 'Textract',
    'AMAZONKENDRA': 'Kendra', 'KENDRA': 'Kendra',
    'AMAZONBEDROCK': 'Bedrock', 'BEDROCK': 'Bedrock',

    # Developer tools
    'AWSCODEBUILD': 'CodeBuild', 'CODEBUILD': 'CodeBuild',
    'AWSCODEDEPLOY': 'CodeDeploy', 'CODEDEPLOY': 'CodeDeploy',
    'AWSCODEPIPELINE': 'CodePipeline', 'CODEPIPELINE': 'CodePipeline',
    'AWSCODEARTIFACT': 'CodeArtifact', 'CODEARTIFACT': 'CodeArtifact',
    'AWSCODECOMMIT': 'CodeCommit', 'CODECOMMIT': 'CodeCommit',
    'AWSCLOUD9': 'Cloud9', 'CLOUD9': 'Cloud9',

    # IoT and media
    'AWSIOT': 'IoT Core', 'AMAZONIOT': 'IoT Core', 'IOT': 'IoT Core', 'IOTCORE': 'IoT Core',
    'AWSIOTANALYTICS': 'IoT Analytics', 'IOTANALYTICS': 'IoT Analytics',
    'AWSELEMENTALMEDIACONVERT': 'Elemental MediaConvert',
    'ELEMENTALMEDIACONVERT': 'Elemental MediaConvert',
    'AMAZONIVS': 'IVS', 'IVS': 'IVS',

    # Support, fees and billing intermediaries
    'AWSSUPPORTBUSINESS': 'Support', 'AWSSUPPORTENTERPRISE': 'Support',
    'AWS-SUPPORT': 'Support', 'SUPPORT': 'Support',
    'OCBLATEFEE': 'AWS Service Fee',
    'TAX': None,

    # Savings Plans & Reserved Instances bill against the underlying service
    'COMPUTESAVINGSPLANS': 'EC2', 'AMAZONCOMPUTESAVINGSPLANS': 'EC2',
    'EC2SAVINGSPLANS': 'EC2', 'EC2INSTANCESAVINGSPLANS': 'EC2',
    'SAGEMAKERSAVINGSPLANS': 'SageMaker', 'AMAZONSAGEMAKERSAVINGSPLANS': 'SageMaker',
    'LAMBDASAVINGSPLANS': 'Lambda',
    'EC2RESERVEDINSTANCE': 'EC2', 'RDSRESERVEDINSTANCE': 'RDS',
    'REDSHIFTRESERVEDINSTANCE': 'Redshift', 'ELASTICACHERESERVEDINSTANCE': 'ElastiCache (Redis)',
}

# Fragments recognised after the OCB billing prefix (prefix match).
INTERMEDIARY_FRAGMENTS: Tuple[Tuple[str, str], ...] = (
    ('CLOUDFRONT', 'CloudFront'),
    ('EC2', 'EC2'),
    ('S3', 'S3'),
    ('RDS', 'RDS'),
    ('LAMBDA', 'Lambda'),
    ('ECS', 'ECS'),
    ('EKS', 'EKS'),
    ('DYNAMODB', 'DynamoDB'),
    ('ELASTICACHE', 'ElastiCache (Redis)'),
    ('REDSHIFT', 'Redshift'),
    ('ATHENA', 'Athena'),
    ('GLUE', 'Glue'),
    ('KINESIS', 'Kinesis'),
    ('EMR', 'EMR'),
    ('SQS', 'SQS'),
    ('SNS', 'SNS'),
    ('APIGATEWAY', 'API Gateway'),
    ('ROUTE53', 'Route 53'),
    ('VPC', 'VPC'),
    ('CLOUDWATCH', 'CloudWatch'),
    ('CLOUDTRAIL', 'CloudTrail'),
    ('IAM', 'IAM'),
    ('KMS', 'KMS'),
    ('SAGEMAKER', 'SageMaker'),
)

# Larger fragment list for the heuristic step (prefix match on the code with
# any vendor prefix removed). Longer, more specific fragments come first.
HEURISTIC_FRAGMENTS: Tuple[Tuple[str, str], ...] = (
    ('ELASTICLOADBALANCING', 'ALB/NLB'),
    ('ELASTICCONTAINERREGISTRY', 'ECR'),
    ('ELASTICMAPREDUCE', 'EMR'),
    ('ELASTICBEANSTALK', 'Elastic Beanstalk'),
    ('ELASTICSEARCH', 'OpenSearch'),
    ('ELASTICACHE', 'ElastiCache (Redis)'),
    ('STEPFUNCTIONS', 'Step Functions'),
    ('CLOUDFORMATION', 'CloudFormation'),
    ('CLOUDFRONT', 'CloudFront'),
    ('CLOUDWATCH', 'CloudWatch'),
    ('CLOUDTRAIL', 'CloudTrail'),
    ('CLOUDHSM', 'CloudHSM'),
    ('CLOUD9', 'Cloud9'),
    ('EVENTBRIDGE', 'EventBridge'),
    ('APIGATEWAY', 'API Gateway'),
    ('QUICKSIGHT', 'QuickSight'),
    ('SAGEMAKER', 'SageMaker'),
    ('DYNAMODB', 'DynamoDB'),
    ('REDSHIFT', 'Redshift'),
    ('KINESIS', 'Kinesis'),
    ('ROUTE53', 'Route 53'),
    ('BEDROCK', 'Bedrock'),
    ('LAMBDA', 'Lambda'),
    ('ATHENA', 'Athena'),
    ('BACKUP', 'AWS Backup'),
    ('STATES', 'Step Functions'),
    ('GLUE', 'Glue'),
    ('EC2', 'EC2'),
    ('ECR', 'ECR'),
    ('ECS', 'ECS'),
    ('EKS', 'EKS'),
    ('EMR', 'EMR'),
    ('ELB', 'ALB/NLB'),
    ('RDS', 'RDS'),
    ('SQS', 'SQS'),
    ('SNS', 'SNS'),
    ('VPC', 'VPC'),
    ('IAM', 'IAM'),
    ('KMS', 'KMS'),
    ('S3', 'S3'),
)

SAVINGS_PLAN_MARKERS = ('SAVINGSPLAN',)
RESERVED_INSTANCE_MARKERS = ('RESERVEDINSTANCE', 'RESERVED-INSTANCE')

SAVINGS_PLAN_TARGETS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (('COMPUTE', 'EC2'), 'EC2'),
    (('SAGEMAKER',), 'SageMaker'),
    (('LAMBDA',), 'Lambda'),
)

RESERVED_INSTANCE_TARGETS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (('EC2',), 'EC2'),
    (('RDS',), 'RDS'),
    (('REDSHIFT',), 'Redshift'),
    (('ELASTICACHE',), 'ElastiCache (Redis)'),
)

SERVICE_CATEGORIES: Dict[str, str] = {
    # vm
    'EC2': 'vm', 'Lightsail': 'vm', 'Outposts': 'vm', 'WorkSpaces': 'vm',
    'WorkSpaces Web': 'vm', 'AppStream': 'vm', 'Nimble Studio': 'vm',
    'GameLift': 'vm', 'RoboMaker': 'vm',
    # container
    'ECS': 'container', 'EKS': 'container', 'Fargate': 'container', 'ECR': 'container',
    # function
    'Lambda': 'function',
    # storage
    'S3': 'storage', 'EBS': 'storage', 'EFS': 'storage', 'Glacier': 'storage',
    'Storage Gateway': 'storage', 'FSx': 'storage', 'FSx for Lustre': 'storage',
    'FSx for Windows File Server': 'storage', 'FSx for NetApp ONTAP': 'storage',
    'FSx for OpenZFS': 'storage', 'AWS Backup': 'storage',
    # database
    'RDS': 'database', 'RDS (MySQL)': 'database', 'RDS (PostgreSQL)': 'database',
    'RDS (SQL Server)': 'database', 'RDS (Oracle)': 'database', 'Aurora': 'database',
    'DynamoDB': 'database', 'ElastiCache (Redis)': 'database',
    'ElastiCache (Memcached)': 'database', 'Redshift': 'database', 'Neptune': 'database',
    'DocumentDB': 'database', 'Timestream': 'database', 'QLDB': 'database',
    'Keyspaces': 'database', 'OpenSearch': 'database',
    # marketplace
    MARKETPLACE_SERVICE: 'application',
}


def service_category(service_name: str) -> str:
    """Broad category for a canonical service name."""
    return SERVICE_CATEGORIES.get(service_name, DEFAULT_CATEGORY)


class NormalizationCache:
    """
    Bounded memo for one or more parses.

    Holds resolved codes and the set of unrecognised codes already warned
    about. A CodeNormalizer creates its own cache unless one is passed in;
    share a cache across parses only on purpose.
    """

    def __init__(self, max_resolved: int = 100_000, max_warned: int = 10_000):
        self.max_resolved = max_resolved
        self.max_warned = max_warned
        self.resolved: Dict[str, ServiceIdentity] = {}
        self.warned: Set[str] = set()
        self._warned_full_logged = False

    def get(self, code: str) -> Optional[ServiceIdentity]:
        return self.resolved.get(code)

    def put(self, code: str, identity: ServiceIdentity) -> None:
        if len(self.resolved) < self.max_resolved:
            self.resolved[code] = identity

    def should_warn(self, code: str) -> bool:
        """True the first time an unrecognised code is seen, while there is room."""
        if code in self.warned:
            return False
        if len(self.warned) >= self.max_warned:
            if not self._warned_full_logged:
                self._warned_full_logged = True
                logger.warning(
                    f"{self.max_warned:,} unrecognised product codes reported, suppressing further warnings"
                )
            return False
        self.warned.add(code)
        return True


class CodeNormalizer:
    """Maps raw CUR product/service codes to canonical services."""

    def __init__(self, cache: Optional[NormalizationCache] = None):
        self.cache = cache if cache is not None else NormalizationCache()

    def normalize(self, product_code: str) -> ServiceIdentity:
        """
        Normalize a product code.

        Args:
            product_code (str): Raw code from the CUR row

        Returns:
            ServiceIdentity: Canonical name and category. Unrecognised codes
            come back unchanged with the default category.
        """
        code = (product_code or '').upper().strip()
        cached = self.cache.get(code)
        if cached is not None:
            return cached

        service = self._resolve(code)
        if service is None:
            if self.cache.should_warn(code):
                logger.warning(f"No mapping found for product code: {product_code}, using original")
            identity = ServiceIdentity(product_code, DEFAULT_CATEGORY)
        elif service is TAX_SERVICE:
            identity = TAX_SERVICE
        else:
            identity = ServiceIdentity(service, service_category(service))

        self.cache.put(code, identity)
        return identity

    def _resolve(self, code: str):
        """Canonical service name, TAX_SERVICE, or None if unresolved."""
        if not code:
            return None

        # 1. direct lookup
        found, service = self._lookup(code)
        if found:
            return service

        # 2. vendor prefix
        for prefix in VENDOR_PREFIXES:
            if code.startswith(prefix):
                found, service = self._lookup(code[len(prefix):])
                if found:
                    return service

        # 3. billing intermediary prefix
        if code.startswith(INTERMEDIARY_PREFIX):
            remainder = code[len(INTERMEDIARY_PREFIX):]
            found, service = self._lookup(remainder)
            if found:
                return service
            service = _match_prefix(remainder, INTERMEDIARY_FRAGMENTS)
            if service:
                return service

        # 4. hyphenated codes, e.g. EC2-INSTANCE
        if '-' in code:
            found, service = self._lookup(code.split('-', 1)[0])
            if found:
                return service

        # 5. heuristics
        service = _infer_pricing_model(code)
        if service:
            return service
        service = _match_prefix(_strip_vendor_prefix(code), HEURISTIC_FRAGMENTS)
        if service:
            return service

        # 6. marketplace product ids
        if MARKETPLACE_CODE_PATTERN.match(code):
            return MARKETPLACE_SERVICE

        return None

    @staticmethod
    def _lookup(code: str):
        if code in PRODUCT_CODE_TO_SERVICE:
            service = PRODUCT_CODE_TO_SERVICE[code]
            return True, TAX_SERVICE if service is None else service
        return False, None


def _strip_vendor_prefix(code: str) -> str:
    for prefix in VENDOR_PREFIXES:
        if code.startswith(prefix):
            return code[len(prefix):]
    return code


def _match_prefix(code: str, fragments: Tuple[Tuple[str, str], ...]) -> Optional[str]:
    for fragment, service in fragments:
        if code.startswith(fragment):
            return service
    return None


def _infer_pricing_model(code: str) -> Optional[str]:
    """Savings plan and reserved instance codes bill against the underlying service."""
    if any(marker in code for marker in SAVINGS_PLAN_MARKERS):
        targets = SAVINGS_PLAN_TARGETS
    elif any(marker in code for marker in RESERVED_INSTANCE_MARKERS):
        targets = RESERVED_INSTANCE_TARGETS
    else:
        return None
    for markers, service in targets:
        if any(marker in code for marker in markers):
            return service
    return 'EC2'
