"""Command-line entry point: fetch data, run the analysis, write the report."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .attributes import MetadataSchemaError
from .config import Config, set_config
from .design import DesignMatrixError
from .filtering import EmptyMatrixError
from .pipeline import run_pipeline
from .rbridge import RPackageError
from .recount import AcquisitionError, load_local, load_study
from .report import write_report
from .validation import ValidationError


logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Differential expression report: wildtype vs Vglut3-/-"
    )
    parser.add_argument('--config', type=Path, help='YAML configuration file')
    parser.add_argument('--project', help='recount3 project accession (overrides config)')
    parser.add_argument('--counts', type=Path, help='Local gene x sample count matrix')
    parser.add_argument('--samples', type=Path, help='Local sample metadata table')
    parser.add_argument('--genes', type=Path, help='Local gene metadata table')
    parser.add_argument('--coverage', action='store_true',
                        help='Local matrix holds coverage sums to convert into counts')
    parser.add_argument('--output', type=Path, help='Report path (overrides config)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the report end to end; returns the process exit code."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    config = Config.from_yaml(args.config) if args.config else Config()
    if args.project:
        config.study.project = args.project
    if args.output:
        config.report.output_path = args.output
    set_config(config)

    try:
        if args.counts is not None:
            if args.samples is None:
                raise ValidationError("--samples is required with --counts")
            field = config.study.avg_mapped_read_length_field if args.coverage else None
            es = load_local(args.counts, args.samples, args.genes, avg_mapped_read_length_field=field)
        else:
            es = load_study(config.study)

        result = run_pipeline(es, config)
        write_report(result, config)
    except AcquisitionError as e:
        logger.error(f"Data acquisition failed: {e}")
        return 2
    except MetadataSchemaError as e:
        logger.error(f"Sample metadata error: {e}")
        return 3
    except EmptyMatrixError as e:
        logger.error(f"Nothing left to model: {e}")
        return 4
    except DesignMatrixError as e:
        logger.error(f"Model cannot be fitted: {e}")
        return 5
    except RPackageError as e:
        logger.error(f"Statistical analysis failed: {e}")
        return 6
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 3
    return 0


if __name__ == '__main__':
    sys.exit(main())
