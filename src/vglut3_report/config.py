"""Configuration management for the Vglut3 differential expression report."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml


PACKAGE_DATA = Path(__file__).parent / "data"


class StudyQuery(BaseModel):
    """recount3 query identifying the study to analyze."""

    project: str = ""
    project_home: str = "data_sources/sra"
    organism: str = "mouse"
    annotation: str = "gencode_v23"
    feature_type: str = "gene"
    avg_mapped_read_length_field: str = "recount_qc.star.average_mapped_length"


class AttributeSpec(BaseModel):
    """One expected sample attribute and its categorical levels."""

    source: str
    levels: Optional[List[str]] = None


class AttributeSchema(BaseModel):
    """Expected sample attributes after SRA attribute expansion.

    The first level of each attribute is the reference level of the model.
    """

    prefix: str = "sra_attribute."
    genotype: AttributeSpec = Field(
        default_factory=lambda: AttributeSpec(source="genotype", levels=["wildtype", "Vglut3-/-"])
    )
    age: AttributeSpec = Field(default_factory=lambda: AttributeSpec(source="age"))
    location: AttributeSpec = Field(default_factory=lambda: AttributeSpec(source="location"))

    def specs(self) -> Dict[str, AttributeSpec]:
        return {"genotype": self.genotype, "age": self.age, "location": self.location}


class FilterSettings(BaseModel):
    """Sample and gene filtering thresholds."""

    # Picked by eye from the assigned_gene_prop distribution
    min_assigned_gene_prop: float = Field(default=0.6, ge=0.0, le=1.0)
    min_count: float = Field(default=10, ge=0)
    min_total_count: float = Field(default=15, ge=0)
    large_n: int = Field(default=10, ge=1)
    min_prop: float = Field(default=0.7, ge=0.0, le=1.0)
    group_by: str = "genotype"


class ModelSettings(BaseModel):
    """Linear model specification."""

    covariates: List[str] = ["genotype", "age", "location", "assigned_gene_prop"]
    coefficient_of_interest: str = "genotype"
    normalization_method: str = "TMM"
    voom_span: float = Field(default=0.5, gt=0.0, le=1.0)
    proportion: float = Field(default=0.01, gt=0.0, lt=1.0)
    stdev_coef_lim: Tuple[float, float] = (0.1, 4.0)
    adjust_method: str = "BH"

    @field_validator("normalization_method")
    @classmethod
    def check_method(cls, value: str) -> str:
        allowed = {"TMM", "upperquartile", "none"}
        if value not in allowed:
            raise ValueError(f"normalization_method must be one of {sorted(allowed)}")
        return value

    @field_validator("adjust_method")
    @classmethod
    def check_adjust_method(cls, value: str) -> str:
        allowed = {"BH", "BY", "fdr", "holm", "hochberg", "hommel", "bonferroni", "none"}
        if value not in allowed:
            raise ValueError(f"adjust_method must be one of {sorted(allowed)}")
        return value


class ReportSettings(BaseModel):
    """Report rendering settings."""

    title: str = "Differential expression between wildtype and Vglut3-/- spiral ganglion neurons"
    author: str = ""
    output_path: Path = Path("vglut3_report.html")
    bibliography: Path = PACKAGE_DATA / "references.yaml"
    heatmap_top_n: int = Field(default=50, ge=1)
    volcano_top_n: int = Field(default=3, ge=0)
    table_top_n: int = Field(default=20, ge=1)
    mds_top: int = Field(default=500, ge=2)
    fdr_threshold: float = Field(default=0.05, ge=0.0, le=1.0)
    gene_notes: Dict[str, str] = Field(default_factory=dict)


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(env_prefix="VGLUT3_", env_nested_delimiter="__")

    study: StudyQuery = Field(default_factory=StudyQuery)
    attributes: AttributeSchema = Field(default_factory=AttributeSchema)
    filtering: FilterSettings = Field(default_factory=FilterSettings)
    model: ModelSettings = Field(default_factory=ModelSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path):
        """Save configuration to YAML file."""
        data = self.model_dump()

        def convert(obj):
            if isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert(item) for item in obj]
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        with open(path, 'w') as f:
            yaml.dump(convert(data), f, default_flow_style=False, sort_keys=False)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config):
    """Set the global configuration instance."""
    global _config
    _config = config
