# %% [markdown]
# # CVD risk: neural network with LIME explanations
#
# Trains a small feed-forward network to predict cardiovascular disease from
# nine routine clinical predictors, evaluates it on a held-out test set, and
# explains it globally (feature/label correlation) and locally (LIME).

# %% [markdown]
# # Imports

# %%
import logging
import os

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from cvd_lime import (
    CONFIG, CVDRiskPipeline, generate_synthetic_cohort
)

# %%
# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# %%
# Visualization settings
sns.set_style("whitegrid")
plt.rcParams.update({
    'figure.figsize': CONFIG.DEFAULT_FIGSIZE,
    'font.size': 11,
    'axes.titlesize': 13,
    'axes.labelsize': 11,
})

# %% [markdown]
# # Data
#
# Set `CVD_DATA` to a CSV with the columns hypertension, treatment, smoking,
# diabetes, gender, age, bmi, cholesterol, sbp and cvd. Without it a synthetic
# cohort is used.

# %%
data_path = os.environ.get("CVD_DATA")
if data_path:
    source = data_path
else:
    logger.info("CVD_DATA not set, using a synthetic cohort")
    source = generate_synthetic_cohort(n_samples=3000, random_state=CONFIG.RANDOM_STATE)

# %% [markdown]
# # Execution

# %%
pipeline = CVDRiskPipeline(CONFIG, verbose=0)

# 1. Load, split, balance, scale
pipeline.load_data(source).preprocess()

# 2. Train and evaluate
pipeline.train().evaluate()

# %%
# Global interpretation
correlations = pipeline.run_global_interpretation()

# %%
# Local interpretation of the first test cases
lime_frame = pipeline.run_local_interpretation()

# %%
# Summary and visualization
pipeline.print_summary()
pipeline.generate_visualizations()
pipeline.export_results()

# %% [markdown]
# # Agreement between global and local views

# %%
lime_counts = lime_frame['feature'].value_counts().rename('lime_selected')
comparison = (
    correlations.set_index('feature')[['correlation', 'abs_correlation']]
    .join(lime_counts)
    .fillna({'lime_selected': 0})
    .astype({'lime_selected': int})
)
print(comparison.to_string(float_format=lambda v: f"{v:.3f}"))

# %%
# Cases with the weakest local fit deserve the least trust
fit = lime_frame.drop_duplicates('case')[['case', 'label', 'label_prob', 'model_r2']]
print(fit.sort_values('model_r2').to_string(index=False))
