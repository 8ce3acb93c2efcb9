"""
Urbanisation and colour-morph frequency pipeline.

Modules:
    config            – shared constants (paths, CRS, radii, sampler, priors)
    file_utils        – artefact naming and skip-if-exists checks
    s01_urbanisation  – buffer imperviousness and distance to the urban centre
    s02_counts        – trap counts + campaigns + site metrics → model table
    s03_models        – GLMM family (binomial / beta-binomial) fitted with PyMC
    s04_kfold         – K-fold held-out elpd, model comparison, family choice
    s05_figures       – morph frequency vs urbanisation figure
    run_all           – orchestrator: run every step + save report
"""
