# ========================
# src/utils/data_generator.py
# ========================

"""
Data Generation Utilities

Synthetic CUR exports with realistic line items and injected edge cases
(tax lines, zero-cost and credit rows, misaligned dates, blank product codes,
quoted resource ids, marketplace codes). The generator keeps its own tally
of what a correct parse must report, so tests and the large-scale script can
cross-check the engine against it.
"""

import csv
import random
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CUR_HEADER = [
    'identity/LineItemId',
    'bill/BillingPeriodStartDate',
    'lineItem/UsageStartDate',
    'lineItem/UsageEndDate',
    'lineItem/ProductCode',
    'lineItem/ResourceId',
    'lineItem/UsageType',
    'lineItem/UsageAmount',
    'lineItem/UnblendedCost',
    'product/instanceType',
    'product/operatingSystem',
    'product/region',
]

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
MARKETPLACE_SERVICE = 'AWS Marketplace'


class CurDataGenerator:
    """
    Generator for synthetic CUR datasets with controlled edge-case injection.
    """

    def __init__(self, seed: Optional[int] = None, resources_per_service: int = 50):
        """
        Initialize data generator.

        Args:
            seed (int): Random seed for reproducible data generation
            resources_per_service (int): Size of each service's resource id pool
        """
        self.random = random.Random(seed)
        self.resources_per_service = resources_per_service
        self._initialize_data_patterns()
        logger.info(f"CurDataGenerator initialized with seed: {seed}")

    def _initialize_data_patterns(self) -> None:
        """Initialize the service catalog and regions."""
        # product code, canonical service, resource id template, usage types, instance types
        self.services = [
            {"code": "AmazonEC2", "service": "EC2", "resource": "i-{n:017x}",
             "usage_types": ["BoxUsage:{instance}"],
             "instance_types": ["t3.micro", "m5.large", "c5.xlarge", "r5.2xlarge"]},
            {"code": "AmazonS3", "service": "S3", "resource": "arn:aws:s3:::bucket-{n}",
             "usage_types": ["TimedStorage-GB-Mo", "Requests-Tier1"], "instance_types": []},
            {"code": "AmazonRDS", "service": "RDS",
             "resource": "arn:aws:rds:{region}:123456789012:db:prod-db-{n}",
             "usage_types": ["InstanceUsage:{instance}"], "instance_types": ["db.r5.large"]},
            {"code": "AWSLambda", "service": "Lambda",
             "resource": "arn:aws:lambda:{region}:123456789012:function:fn-{n}",
             "usage_types": ["Lambda-GB-Second", "Request"], "instance_types": []},
            {"code": "AmazonCloudFront", "service": "CloudFront", "resource": "",
             "usage_types": ["DataTransfer-Out-Bytes"], "instance_types": []},
            {"code": "AmazonDynamoDB", "service": "DynamoDB",
             "resource": "arn:aws:dynamodb:{region}:123456789012:table/orders-{n}",
             "usage_types": ["ReadCapacityUnit-Hrs"], "instance_types": []},
        ]
        self.regions = ["us-east-1", "us-west-2", "eu-west-1", "ap-southeast-2"]

        # Injected anomaly mix (kind -> weight)
        self.anomalies = {
            'tax': 0.2,
            'zero_cost': 0.2,
            'credit': 0.15,
            'misaligned_date': 0.1,
            'blank_product_code': 0.1,
            'quoted_resource': 0.15,
            'marketplace': 0.1,
        }

    def generate_dataset(self,
                         file_path: str,
                         num_rows: int,
                         anomaly_rate: float = 0.15,
                         start_date: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Generate a CUR file and the figures a correct parse must report.

        Args:
            file_path (str): Output CSV file path
            num_rows (int): Number of data rows to generate
            anomaly_rate (float): Fraction of rows that are injected edge cases
            start_date (datetime): Start of the billing period

        Returns:
            dict: Generation statistics with expected_* figures
        """
        return self.generate_large_dataset_chunked(
            file_path, num_rows, chunk_size=num_rows or 1,
            anomaly_rate=anomaly_rate, start_date=start_date,
        )

    def generate_large_dataset_chunked(self,
                                       file_path: str,
                                       total_rows: int,
                                       chunk_size: int = 100000,
                                       anomaly_rate: float = 0.15,
                                       start_date: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Generate a large CUR file in chunks to keep memory flat.

        Args:
            file_path (str): Output file path
            total_rows (int): Total number of data rows
            chunk_size (int): Rows per progress log
            anomaly_rate (float): Fraction of rows that are injected edge cases
            start_date (datetime): Start of the billing period

        Returns:
            dict: Generation statistics with expected_* figures
        """
        logger.info(f"Generating CUR dataset: {total_rows:,} rows, {anomaly_rate:.1%} anomalies")
        if start_date is None:
            start_date = datetime(2025, 9, 1)

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        stats = {
            'total_rows': total_rows,
            'anomaly_rate': anomaly_rate,
            'start_date': start_date,
            'anomaly_types': {},
            'expected_processed_rows': 0,
            'expected_total_raw_cost': Decimal("0"),
            'expected_skipped_rows': {'noProductCode': 0, 'tax': 0, 'zeroCost': 0, 'parseErrors': 0},
        }
        workload_costs: Dict[str, Decimal] = {}

        with open(file_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f, lineterminator='\n')
            writer.writerow(CUR_HEADER)

            rows_written = 0
            chunks_written = 0
            while rows_written < total_rows:
                chunk_rows = min(chunk_size, total_rows - rows_written)
                for i in range(chunk_rows):
                    record = self._generate_single_record(
                        rows_written + i, start_date, anomaly_rate, stats, workload_costs
                    )
                    writer.writerow(record)
                rows_written += chunk_rows
                chunks_written += 1
                logger.debug(f"Chunk {chunks_written} complete: {rows_written:,}/{total_rows:,} rows")

        stats['chunks_written'] = chunks_written if total_rows else 0
        stats['expected_unique_workloads'] = len(workload_costs)
        stats['expected_aggregated_cost'] = sum(workload_costs.values(), Decimal("0"))
        stats['expected_workload_costs'] = workload_costs

        logger.info(f"Dataset generated: {file_path}")
        logger.info(f"Anomaly breakdown: {stats['anomaly_types']}")
        return stats

    def _generate_single_record(self,
                                index: int,
                                start_date: datetime,
                                anomaly_rate: float,
                                stats: Dict[str, Any],
                                workload_costs: Dict[str, Decimal]) -> List[Any]:
        """Generate one CUR line item and update the expected figures."""
        rng = self.random
        service = rng.choice(self.services)
        region = rng.choice(self.regions)
        usage_start = start_date + timedelta(days=rng.randint(0, 29), hours=rng.randint(0, 23))
        usage_end = usage_start + timedelta(hours=1)

        instance_type = rng.choice(service["instance_types"]) if service["instance_types"] else ""
        usage_type = rng.choice(service["usage_types"]).format(instance=instance_type)
        resource_id = service["resource"].format(n=rng.randint(1, self.resources_per_service), region=region)
        operating_system = rng.choice(["Linux", "Linux", "Windows"]) if instance_type else ""
        usage_amount = Decimal(rng.randint(1, 100000)).scaleb(-2)
        cost = Decimal(rng.randint(1, 5000000)).scaleb(-5)

        product_code = service["code"]
        canonical_service = service["service"]
        anomaly = None
        if rng.random() < anomaly_rate:
            anomaly = rng.choices(list(self.anomalies), weights=list(self.anomalies.values()))[0]
            self._track_anomaly_type(stats, anomaly)

        if anomaly == 'tax':
            product_code, resource_id, usage_type, instance_type = 'TAX', '', 'Tax', ''
        elif anomaly == 'zero_cost':
            cost = Decimal("0")
        elif anomaly == 'credit':
            cost = -cost
        elif anomaly == 'misaligned_date':
            product_code = usage_start.strftime(ISO_FORMAT)
        elif anomaly == 'blank_product_code':
            product_code = ''
        elif anomaly == 'quoted_resource':
            resource_id = f"arn:aws:s3:::bucket-{index},with,commas"
            product_code, canonical_service, usage_type, instance_type = 'AmazonS3', 'S3', 'Requests-Tier1', ''
        elif anomaly == 'marketplace':
            # A leading digit keeps random ids clear of the service-name prefixes
            product_code = rng.choice('123456789') + ''.join(
                rng.choice('ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789') for _ in range(24)
            )
            canonical_service, resource_id, instance_type = MARKETPLACE_SERVICE, '', ''

        stats['expected_total_raw_cost'] += cost
        if anomaly in ('misaligned_date', 'blank_product_code'):
            stats['expected_skipped_rows']['noProductCode'] += 1
        elif anomaly == 'tax':
            stats['expected_skipped_rows']['tax'] += 1
        else:
            stats['expected_processed_rows'] += 1
            if cost == 0:
                stats['expected_skipped_rows']['zeroCost'] += 1
            workload_id = resource_id or f"{canonical_service}_{region}_aggregated"
            key = f"{workload_id}_{canonical_service}_{region}".lower()
            workload_costs[key] = workload_costs.get(key, Decimal("0")) + cost

        return [
            f"line-{index:010d}",
            start_date.strftime(ISO_FORMAT),
            usage_start.strftime(ISO_FORMAT),
            usage_end.strftime(ISO_FORMAT),
            product_code,
            resource_id,
            usage_type,
            str(usage_amount),
            str(cost),
            instance_type,
            operating_system,
            region,
        ]

    def _track_anomaly_type(self, stats: Dict[str, Any], anomaly_type: str) -> None:
        """Track anomaly types for statistics."""
        stats['anomaly_types'][anomaly_type] = stats['anomaly_types'].get(anomaly_type, 0) + 1
