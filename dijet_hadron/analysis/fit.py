#!/usr/bin/env python

""" Fits to the 1D dijet-hadron correlations.

The peaks are described by extended gaussians, such that the amplitude corresponds to the yield.
The background is described by a flat pedestal.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

import pachyderm.fit
from pachyderm import histogram
from pachyderm.fit import T_FitArguments

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

Projections = Mapping[analysis_objects.PtSlot, Optional[histogram.Histogram1D]]
Fits = analysis_objects.Slots[analysis_objects.PtSlot, "CorrelationFit"]

def pedestal_with_extended_gaussian(x: Union[float, np.ndarray], mean: float, width: float,
                                    amplitude: float, pedestal: float) -> Union[float, np.ndarray]:
    """ Pedestal + extended (unnormalized) gaussian

    Args:
        x: Independent variable.
        mean: Gaussian mean.
        width: Gaussian width.
        amplitude: Amplitude of the gaussian.
        pedestal: Pedestal value.
    Returns:
        Function value.
    """
    return pedestal + pachyderm.fit.extended_gaussian(x = x, mean = mean, sigma = width, amplitude = amplitude)

def pedestal_with_near_and_away_side_gaussians(x: Union[float, np.ndarray],
                                               ns_mean: float, ns_width: float, ns_amplitude: float,
                                               as_mean: float, as_width: float, as_amplitude: float,
                                               pedestal: float) -> Union[float, np.ndarray]:
    """ Pedestal + extended gaussians for the near side and the away side.

    Args:
        x: Independent variable.
        ns_mean: Near side gaussian mean.
        ns_width: Near side gaussian width.
        ns_amplitude: Near side gaussian amplitude.
        as_mean: Away side gaussian mean.
        as_width: Away side gaussian width.
        as_amplitude: Away side gaussian amplitude.
        pedestal: Pedestal value.
    Returns:
        Function value.
    """
    return (
        pedestal
        + pachyderm.fit.extended_gaussian(x = x, mean = ns_mean, sigma = ns_width, amplitude = ns_amplitude)
        + pachyderm.fit.extended_gaussian(x = x, mean = as_mean, sigma = as_width, amplitude = as_amplitude)
    )

def restrict_to_fit_range(h: histogram.Histogram1D, fit_range: params.SelectedRange) -> histogram.Histogram1D:
    """ Restrict the histogram to the bins whose centers are within the fit range.

    Args:
        h: Histogram to be restricted.
        fit_range: Fit range.
    Returns:
        Histogram containing only the selected bins.
    """
    restricted_range = (h.x > fit_range.min) & (h.x < fit_range.max)
    selected_bins = np.where(restricted_range)[0]
    if len(selected_bins) == 0:
        raise ValueError(f"No bins of {h.metadata.get('name', 'hist')} are within the fit range {fit_range}.")
    return histogram.Histogram1D(
        # We need the bin edges to be inclusive.
        bin_edges = h.bin_edges[selected_bins[0]:selected_bins[-1] + 2],
        y = h.y[restricted_range],
        errors_squared = h.errors_squared[restricted_range],
    )

def _scale(h: histogram.Histogram1D) -> float:
    """ Characteristic scale of the histogram values, used to set the parameter limits. """
    return max(float(np.max(np.abs(h.y))), 1.0)

class BinnedChiSquaredSkippingEmptyBins(pachyderm.fit.BinnedChiSquared):
    """ Binned chi squared where bins with zero error don't contribute.

    Bins without any entries have no error, so they are excluded from the fit rather than dividing by 0.
    """
    _cost_function = pachyderm.fit.binned_chi_squared_safe_for_zeros

class CorrelationFit(pachyderm.fit.Fit):
    """ Base class for fitting the 1D correlations with a pedestal + gaussian(s).

    The fit options must contain the fit ``range``. If ``seed_pedestal_from_minimum`` is set in the fit options,
    the pedestal is seeded with the minimum bin content of the histogram. Otherwise, it is seeded with 0.

    Attributes:
        fit_range: Range used for fitting the data. Values inside of this range will be used.
        user_arguments: User arguments for the fit. Default: None.
        fit_function: Function to be fit.
        fit_result: Result of the fit. Only valid after the fit has been performed.
        yield_parameter: Name of the parameter which corresponds to the near side yield.
        width_parameter: Name of the parameter which corresponds to the near side width.
    """
    yield_parameter = "amplitude"
    width_parameter = "width"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Empty bins are skipped in the chi squared.
        if not self.use_log_likelihood:
            self._cost_func = BinnedChiSquaredSkippingEmptyBins

    def _post_init_validation(self) -> None:
        """ Validate that the fit object was setup properly.

        Args:
            None.
        Returns:
            None.
        """
        fit_range = self.fit_options.get("range", None)
        # Check that the fit range is specified
        if fit_range is None:
            raise ValueError("Fit range must be provided in the fit options.")

        # Check that the fit range is a SelectedRange (this isn't really suitable for duck typing)
        if not isinstance(fit_range, params.SelectedRange):
            raise ValueError("Must provide fit range with a selected range or a set of two values")

    def _pedestal_seed(self, h: histogram.Histogram1D) -> float:
        """ Determine the initial value of the pedestal. """
        if self.fit_options.get("seed_pedestal_from_minimum", False):
            return float(np.min(h.y))
        return 0.0

    def _pedestal_arguments(self, h: histogram.Histogram1D) -> T_FitArguments:
        """ Arguments for the pedestal, with limits based on the scale of the histogram. """
        pedestal_seed = self._pedestal_seed(h)
        scale = _scale(h)
        return {
            "pedestal": pedestal_seed, "limit_pedestal": (-10 * scale, 10 * scale),
            "error_pedestal": max(0.1 * np.abs(pedestal_seed), 0.01),
        }

    def _default_arguments(self, h: histogram.Histogram1D) -> T_FitArguments:
        """ Default arguments required for the fit. Every parameter needs a limit and an error. """
        raise NotImplementedError("Must be implemented by the derived class.")

    def _setup(self, h: histogram.Histogram1D) -> Tuple[histogram.Histogram1D, T_FitArguments]:
        """ Setup the histogram and arguments for the fit.

        Args:
            h: Histogram to be fit.
        Returns:
            Histogram to use for the fit, default arguments for the fit. Note that the histogram may be range
                restricted or otherwise modified here.
        """
        restricted_hist = restrict_to_fit_range(h, self.fit_options["range"])
        return restricted_hist, self._default_arguments(h)

class FitPedestalWithExtendedGaussian(CorrelationFit):
    """ Fit a pedestal + extended (unnormalized) gaussian with the mean fixed at 0.

    Used for the delta eta correlations, as well as the near-side only delta phi fit.
    """
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Finally, setup the fit function
        self.fit_function = pedestal_with_extended_gaussian

    def _default_arguments(self, h: histogram.Histogram1D) -> T_FitArguments:
        arguments = self._pedestal_arguments(h)
        arguments.update({
            "amplitude": 1, "limit_amplitude": (0, 100 * _scale(h)), "error_amplitude": 0.1,
            "mean": 0, "limit_mean": (-0.5, 0.5), "error_mean": 0.05, "fix_mean": True,
            "width": 0.5, "limit_width": (0.01, 5), "error_width": 0.05,
        })
        return arguments

class FitPedestalWithNearAndAwaySideGaussians(CorrelationFit):
    """ Fit a pedestal + near side and away side extended gaussians.

    The means are fixed to 0 and pi, respectively. Used for the full delta phi correlations.
    """
    yield_parameter = "ns_amplitude"
    width_parameter = "ns_width"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # Finally, setup the fit function
        self.fit_function = pedestal_with_near_and_away_side_gaussians

    def _default_arguments(self, h: histogram.Histogram1D) -> T_FitArguments:
        max_amplitude = 100 * _scale(h)
        arguments = self._pedestal_arguments(h)
        arguments.update({
            "ns_amplitude": 1, "limit_ns_amplitude": (0, max_amplitude), "error_ns_amplitude": 0.1,
            "ns_mean": 0, "limit_ns_mean": (-0.5, 0.5), "error_ns_mean": 0.05, "fix_ns_mean": True,
            "ns_width": 0.5, "limit_ns_width": (0.01, 5), "error_ns_width": 0.05,
            "as_amplitude": 1, "limit_as_amplitude": (0, max_amplitude), "error_as_amplitude": 0.1,
            "as_mean": np.pi, "limit_as_mean": (np.pi - 0.5, np.pi + 0.5), "error_as_mean": 0.05, "fix_as_mean": True,
            "as_width": 0.5, "limit_as_width": (0.01, 5), "error_as_width": 0.05,
        })
        return arguments

def _perform_fits(hists: Projections, fit_class: Type[CorrelationFit], fit_range: params.SelectedRange,
                  fit_options: Optional[Dict[str, Any]] = None,
                  user_arguments_func: Optional[Any] = None,
                  max_pt_bin: Optional[int] = None) -> Fits:
    """ Fit each of the given histograms.

    Args:
        hists: Histograms to be fit.
        fit_class: Fit to be performed.
        fit_range: Fit range.
        fit_options: Additional fit options. Default: None.
        user_arguments_func: Function which takes the key and returns the user arguments for that fit. Default: None.
        max_pt_bin: If specified, only pt bins below this value are fit. Default: None.
    Returns:
        Fit objects (with the fit result stored) for each key. Slots are None if the fit wasn't performed
            or if it failed.
    """
    if fit_options is None:
        fit_options = {}
    fits: Fits = {}
    for key, h in hists.items():
        fits[key] = None
        if h is None:
            continue
        if max_pt_bin is not None and key.pt >= max_pt_bin:
            logger.debug(f"Skipping fit for {key} because pt bin {key.pt} >= {max_pt_bin}")
            continue

        user_arguments = user_arguments_func(key) if user_arguments_func else {}
        fit_object = fit_class(
            fit_options = {"range": fit_range, **fit_options},
            user_arguments = user_arguments,
            use_log_likelihood = False,
        )
        logger.debug(f"Fitting {h.metadata.get('name', key)} with {fit_class.__name__} over {fit_range}")
        try:
            fit_result = fit_object.fit(h = h)
        except (pachyderm.fit.FitFailed, ValueError, RuntimeError) as e:
            logger.error(f"Fit failed for {key}: {e}")
            continue
        fit_object.fit_result = fit_result
        fits[key] = fit_object

    return fits

def _subtract_pedestal(hists: Projections, fits: Fits) -> None:
    """ Subtract the fitted pedestal from every bin of the histograms. """
    for key, fit_object in analysis_objects.filled_slots(fits):
        h = hists[key]
        if h is None:
            raise ValueError(key, "Cannot subtract the pedestal from an empty slot.")
        pedestal = fit_object.fit_result.values_at_minimum["pedestal"]
        logger.debug(f"Subtracting pedestal {pedestal} from {h.metadata.get('name', key)}")
        h.y = h.y - pedestal

def subtract_background_delta_eta(hists: Projections, selector: binning.BinSelector) -> Fits:
    """ Fit the delta eta correlations and subtract the fitted pedestal.

    Only the pt bins below the background fit cutoff are fit and subtracted. The others are left
    unmodified because there aren't enough statistics for a stable fit.

    Args:
        hists: Delta eta correlations. They will be modified in place.
        selector: Binning of the analysis.
    Returns:
        Background fits.
    """
    fits = _perform_fits(
        hists = hists, fit_class = FitPedestalWithExtendedGaussian,
        fit_range = selector.eta_fit_range,
        fit_options = {"seed_pedestal_from_minimum": True},
        max_pt_bin = selector.background_fit_max_pt_bin,
    )
    _subtract_pedestal(hists, fits)
    return fits

def subtract_background_delta_phi(hists: Projections, selector: binning.BinSelector) -> Fits:
    """ Fit the delta phi correlations and subtract the fitted pedestal.

    Only the pt bins below the background fit cutoff are fit and subtracted. Some slots are seeded
    with narrower widths to help the fit converge.

    Args:
        hists: Delta phi correlations. They will be modified in place.
        selector: Binning of the analysis.
    Returns:
        Background fits.
    """
    def user_arguments(key: analysis_objects.PtSlot) -> T_FitArguments:
        if selector.uses_narrow_width_seed(key.file, key.pt):
            return {"ns_width": selector.narrow_width_seed, "as_width": selector.narrow_width_seed}
        return {}

    fits = _perform_fits(
        hists = hists, fit_class = FitPedestalWithNearAndAwaySideGaussians,
        fit_range = selector.phi_fit_range,
        fit_options = {"seed_pedestal_from_minimum": True},
        user_arguments_func = user_arguments,
        max_pt_bin = selector.background_fit_max_pt_bin,
    )
    _subtract_pedestal(hists, fits)
    return fits

def fit_delta_eta(hists: Projections, selector: binning.BinSelector) -> Fits:
    """ Fit the delta eta correlations with a pedestal + gaussian. The hists are not modified. """
    return _perform_fits(hists = hists, fit_class = FitPedestalWithExtendedGaussian, fit_range = selector.eta_fit_range)

def fit_delta_phi(hists: Projections, selector: binning.BinSelector) -> Fits:
    """ Fit the delta phi correlations with a pedestal + near and away side gaussians. The hists are not modified. """
    return _perform_fits(
        hists = hists, fit_class = FitPedestalWithNearAndAwaySideGaussians, fit_range = selector.phi_fit_range,
    )

def fit_delta_phi_restricted(hists: Projections, selector: binning.BinSelector) -> Fits:
    """ Fit only the near side of the delta phi correlations with a pedestal + gaussian.

    This is intended for correlations where the background was already subtracted.
    """
    return _perform_fits(
        hists = hists, fit_class = FitPedestalWithExtendedGaussian, fit_range = selector.phi_corrected_fit_range,
    )
