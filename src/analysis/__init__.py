from galleryai.analysis.models import AnalysisMetadata, AnalysisResult, ImageFeatures
from galleryai.analysis.pipeline import AnalysisPipeline

__all__ = ["AnalysisMetadata", "AnalysisPipeline", "AnalysisResult", "ImageFeatures"]
